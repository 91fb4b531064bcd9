import logging
from typing import Optional, List, Tuple

from fastcrud import FastCRUD
from sqlalchemy.ext.asyncio import AsyncSession

from .interfaces.repositories import AbstractProductRepository
from .models import Product

logger = logging.getLogger(__name__)


class SQLAlchemyProductRepository(AbstractProductRepository):
    """Implémentation SQLAlchemy (FastCRUD) du repository des produits."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.crud = FastCRUD(Product)

    async def get_by_id(self, product_id: int) -> Optional[Product]:
        logger.debug(f"[Repo] Récupération produit ID: {product_id}")
        return await self.crud.get(db=self.db, schema_to_select=Product, return_as_model=True, id=product_id)

    async def list_active(self, *, offset: int = 0, limit: int = 500) -> Tuple[List[Product], int]:
        result = await self.crud.get_multi(
            db=self.db,
            offset=offset,
            limit=limit,
            schema_to_select=Product,
            return_as_model=True,
            sort_columns=["name"],
            sort_orders=["asc"],
            is_active=True,
        )
        return result.get("data", []), result.get("total_count", 0)

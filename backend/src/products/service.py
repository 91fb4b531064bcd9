import logging

from .interfaces.repositories import AbstractProductRepository
from .models import ProductRead, ActiveProductRead, ActiveProductList
from .exceptions import ProductNotFoundException

logger = logging.getLogger(__name__)


class ProductService:
    """Service applicatif en lecture sur le catalogue produits."""

    def __init__(self, product_repo: AbstractProductRepository):
        self.product_repo = product_repo

    async def list_active_products(self) -> ActiveProductList:
        products, total = await self.product_repo.list_active()
        logger.debug(f"[ProductService] {total} produits actifs")
        return ActiveProductList(
            items=[ActiveProductRead.model_validate(p, from_attributes=True) for p in products],
            total=total,
        )

    async def get_product(self, product_id: int) -> ProductRead:
        product = await self.product_repo.get_by_id(product_id)
        if product is None:
            raise ProductNotFoundException(product_id)
        return ProductRead.model_validate(product, from_attributes=True)

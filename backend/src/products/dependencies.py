from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.database import get_db_session
from src.products.interfaces.repositories import AbstractProductRepository
from src.products.repositories import SQLAlchemyProductRepository
from src.products.service import ProductService


def get_product_repository(
    session: Annotated[AsyncSession, Depends(get_db_session)]
) -> AbstractProductRepository:
    """Fournit une instance du repository produits (implémentation SQLAlchemy)."""
    return SQLAlchemyProductRepository(db=session)

ProductRepositoryDep = Annotated[AbstractProductRepository, Depends(get_product_repository)]


def get_product_service(product_repo: ProductRepositoryDep) -> ProductService:
    """Fournit une instance du service catalogue."""
    return ProductService(product_repo=product_repo)

ProductServiceDep = Annotated[ProductService, Depends(get_product_service)]

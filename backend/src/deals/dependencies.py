from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.database import get_db_session
from src.deals.interfaces.repositories import AbstractDealRepository
from src.deals.repositories import SQLAlchemyDealRepository


def get_deal_repository(
    session: Annotated[AsyncSession, Depends(get_db_session)]
) -> AbstractDealRepository:
    """Fournit une instance du repository des deals (implémentation SQLAlchemy)."""
    return SQLAlchemyDealRepository(db_session=session)

DealRepositoryDep = Annotated[AbstractDealRepository, Depends(get_deal_repository)]

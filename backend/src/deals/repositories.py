import logging
from typing import Optional

from fastcrud import FastCRUD
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .interfaces.repositories import AbstractDealRepository
from .models import Deal
from .exceptions import DealCreationFailedException, DuplicateDealException

logger = logging.getLogger(__name__)


class SQLAlchemyDealRepository(AbstractDealRepository):
    """Implémentation SQLAlchemy du repository des deals."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.crud = FastCRUD(Deal)

    async def get_by_id(self, deal_id: int) -> Optional[Deal]:
        return await self.crud.get(db=self.db, schema_to_select=Deal, return_as_model=True, id=deal_id)

    async def add(self, deal: Deal) -> Deal:
        quote_id = deal.quote_id
        try:
            self.db.add(deal)
            await self.db.flush()  # Pour obtenir l'ID du deal
        except IntegrityError as e:
            # Un deal concurrent a déjà été commité pour ce devis
            logger.warning(f"[DealRepo] Deal déjà existant pour devis {quote_id}: {e.orig}")
            await self.db.rollback()
            raise DuplicateDealException(quote_id=quote_id)
        except SQLAlchemyError as e:
            logger.error(f"[DealRepo] Erreur insertion deal '{deal.title}': {e}", exc_info=True)
            await self.db.rollback()
            raise DealCreationFailedException(detail=str(e))
        logger.debug(f"[DealRepo] Deal ID {deal.id} ajouté (non commité)")
        return deal

"""
Conversion d'un devis accepté en deal du pipeline commercial.

L'opération est idempotente: un devis ne produit jamais plus d'un deal.
L'insertion du deal et l'association au devis (mise à jour conditionnelle
`deal_id IS NULL`) sont commitées ensemble; en cas de course, le perdant
annule son deal et retourne celui du gagnant, que la course soit perdue à
l'insertion du deal (contrainte unique sur deals.quote_id) ou à l'association.
"""
import logging
from dataclasses import dataclass

from src.config import settings
from src.deals.exceptions import DuplicateDealException
from src.deals.interfaces.repositories import AbstractDealRepository
from src.deals.models import Deal, DealStage, STAGE_PROBABILITIES
from src.quotes.constants import QuoteStatus
from src.quotes.exceptions import InvalidQuoteStateException, QuoteAlreadyConvertedException
from src.quotes.interfaces.repositories import AbstractQuoteRepository
from src.quotes.models import Quote
from src.quotes.permissions import get_accessible_quote
from src.users.models import UserRead

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionResult:
    deal_id: int
    created: bool


def build_deal_from_quote(quote: Quote) -> Deal:
    """Prépare le deal correspondant à un devis accepté."""
    stage = DealStage(settings.DEAL_INITIAL_STAGE)
    products = [
        {
            "product_id": item.product_id,
            "name": item.product_name,
            "quantity": item.quantity,
            "price": str(item.unit_price),
            "line_total": str(item.line_total),
        }
        for item in quote.items
    ]
    return Deal(
        title=f"Deal from quote {quote.quote_number}: {quote.title}"[:255],
        value=quote.grand_total,
        currency=settings.DEAL_CURRENCY,
        stage=stage.value,
        probability=STAGE_PROBABILITIES[stage],
        owner_id=quote.owner_id,
        quote_id=quote.id,
        notes=quote.notes,
        products=products,
    )


class DealConversionService:
    """Convertit un devis accepté en deal, une seule fois."""

    def __init__(self, quote_repo: AbstractQuoteRepository, deal_repo: AbstractDealRepository):
        self.quote_repo = quote_repo
        self.deal_repo = deal_repo

    async def convert_to_deal(self, quote_id: int, current_user: UserRead) -> ConversionResult:
        logger.info(f"[ConversionService] Conversion devis {quote_id} en deal par user {current_user.id}")
        quote = await get_accessible_quote(self.quote_repo, quote_id, current_user)

        if quote.deal_id is not None:
            logger.info(f"[ConversionService] Devis {quote_id} déjà converti (deal {quote.deal_id}).")
            return ConversionResult(deal_id=quote.deal_id, created=False)

        status = QuoteStatus(quote.status)
        if status != QuoteStatus.ACCEPTED:
            logger.warning(f"[ConversionService] Conversion refusée: devis {quote_id} au statut '{status.value}'.")
            raise InvalidQuoteStateException(quote_id, status.value, "seul un devis accepté peut être converti")

        try:
            deal = await self.deal_repo.add(build_deal_from_quote(quote))
        except DuplicateDealException:
            # Lecture périmée: une conversion concurrente a commité son deal entre-temps
            current = await self.quote_repo.get_by_id_with_items(quote_id=quote_id)
            if current is None or current.deal_id is None:
                raise
            logger.info(f"[ConversionService] Course perdue pour devis {quote_id}: deal existant {current.deal_id}.")
            return ConversionResult(deal_id=current.deal_id, created=False)

        deal_id = deal.id
        try:
            await self.quote_repo.attach_deal(quote_id=quote_id, deal_id=deal_id, actor_id=current_user.id)
        except QuoteAlreadyConvertedException as e:
            logger.info(f"[ConversionService] Course perdue pour devis {quote_id}: deal existant {e.deal_id}.")
            return ConversionResult(deal_id=e.deal_id, created=False)

        logger.info(f"[ConversionService] Devis {quote_id} converti en deal {deal_id}.")
        return ConversionResult(deal_id=deal_id, created=True)

import logging
from datetime import timedelta

from src.config import settings
from src.quotes.constants import QuoteStatus
from src.quotes.exceptions import QuoteRevisionConflictException
from src.quotes.interfaces.repositories import AbstractQuoteRepository
from src.quotes.models import Quote, QuoteRead, map_quote_to_read, build_quote_items
from src.quotes.permissions import get_accessible_quote
from src.quotes.pricing import compute_quote
from src.quotes.utils import utcnow, ensure_utc, generate_quote_number
from src.users.models import UserRead

logger = logging.getLogger(__name__)


class RevisionService:
    """Crée une nouvelle version d'un devis à partir d'un devis existant."""

    def __init__(self, quote_repo: AbstractQuoteRepository):
        self.quote_repo = quote_repo

    async def clone(self, quote_id: int, current_user: UserRead) -> QuoteRead:
        """
        Clone un devis en brouillon de version +1 et passe la source en 'revised'.

        Un devis déjà révisé, ou qui possède déjà une révision, ne peut pas être
        cloné à nouveau (pas de branches dans l'arbre des versions).
        """
        logger.info(f"[RevisionService] Révision du devis {quote_id} par user {current_user.id}")
        source = await get_accessible_quote(self.quote_repo, quote_id, current_user)

        if QuoteStatus(source.status) == QuoteStatus.REVISED:
            logger.warning(f"[RevisionService] Devis {quote_id} déjà révisé.")
            raise QuoteRevisionConflictException(quote_id)
        child = await self.quote_repo.find_active_child(quote_id=quote_id)
        if child is not None:
            logger.warning(f"[RevisionService] Devis {quote_id} possède déjà la révision {child.id}.")
            raise QuoteRevisionConflictException(quote_id, child_id=child.id)

        now = utcnow()
        issue_date = ensure_utc(source.issue_date)
        expiry_date = ensure_utc(source.expiry_date)
        validity = expiry_date - issue_date
        if expiry_date < now:
            validity = max(validity, timedelta(days=settings.QUOTE_DEFAULT_VALIDITY_DAYS))

        # Totaux toujours recalculés, jamais recopiés
        amounts = compute_quote(source.items, source.shipping_cost)
        new_quote = Quote(
            quote_number=generate_quote_number(settings.QUOTE_NUMBER_PREFIX, now),
            version=source.version + 1,
            parent_quote_id=source.id,
            title=source.title,
            status=QuoteStatus.DRAFT.value,
            billing_address=dict(source.billing_address) if source.billing_address else None,
            shipping_cost=source.shipping_cost,
            subtotal=amounts.subtotal,
            total_discount=amounts.total_discount,
            total_tax=amounts.total_tax,
            grand_total=amounts.grand_total,
            issue_date=now,
            expiry_date=now + validity,
            owner_id=source.owner_id,
            deal_id=None,
            notes=source.notes,
            terms_and_conditions=source.terms_and_conditions,
            status_changed_at=now,
        )
        items = build_quote_items(list(source.items), amounts)

        created = await self.quote_repo.create_revision(
            source=source,
            expected_version=source.lock_version,
            child=new_quote,
            items=items,
            actor_id=current_user.id,
        )
        logger.info(f"[RevisionService] Devis {quote_id} révisé: nouveau devis {created.id} (v{created.version})")
        return map_quote_to_read(created)

"""
Machine à états des devis.

Les transitions autorisées sont décrites par `ALLOWED_TRANSITIONS`. Le statut
'revised' n'est jamais demandable directement: seul le service de révision
le pose. L'expiration des devis envoyés échus est déclenchée de l'extérieur
(script planifié ou endpoint admin) via `expire_overdue`.
"""
import logging
from datetime import datetime
from typing import Optional, Iterable, Union

from src.quotes.constants import QuoteStatus, ALLOWED_TRANSITIONS, TERMINAL_STATUSES
from src.quotes.exceptions import (
    IllegalQuoteTransitionException,
    InvalidQuoteStateException,
    ConcurrentQuoteModificationException,
)
from src.quotes.interfaces.repositories import AbstractQuoteRepository
from src.quotes.models import Quote, QuoteRead, map_quote_to_read
from src.quotes.permissions import get_accessible_quote
from src.quotes.utils import utcnow, ensure_utc
from src.users.models import UserRead

logger = logging.getLogger(__name__)

# Champs modifiables uniquement en brouillon
DRAFT_ONLY_FIELDS = frozenset({"items", "shipping_cost", "expiry_date"})


def check_transition(from_status: Union[QuoteStatus, str], to_status: Union[QuoteStatus, str]) -> QuoteStatus:
    """Vérifie qu'une transition est dans la table; retourne le statut cible."""
    current = QuoteStatus(from_status)
    try:
        requested = QuoteStatus(to_status)
    except ValueError:
        raise IllegalQuoteTransitionException(current.value, str(to_status))
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise IllegalQuoteTransitionException(current.value, requested.value)
    return requested


def ensure_editable(quote: Quote, fields: Iterable[str]) -> None:
    """Refuse toute modification d'un devis final, et des lignes/frais/échéance hors brouillon."""
    status = QuoteStatus(quote.status)
    fields = set(fields)
    if status in TERMINAL_STATUSES:
        raise InvalidQuoteStateException(quote.id, status.value, "un devis dans un statut final ne peut plus être modifié")
    locked = sorted(fields & DRAFT_ONLY_FIELDS)
    if locked and status != QuoteStatus.DRAFT:
        raise InvalidQuoteStateException(
            quote.id, status.value, f"modification de {', '.join(locked)} possible uniquement en brouillon"
        )


class LifecycleManager:
    """Applique les transitions de statut des devis."""

    def __init__(self, quote_repo: AbstractQuoteRepository):
        self.quote_repo = quote_repo

    check_transition = staticmethod(check_transition)
    ensure_editable = staticmethod(ensure_editable)

    async def transition(
        self,
        quote_id: int,
        requested_status: Union[QuoteStatus, str],
        current_user: UserRead,
        expected_version: Optional[int] = None,
    ) -> QuoteRead:
        """Change le statut d'un devis si la transition est autorisée."""
        logger.info(f"[Lifecycle] Demande transition devis {quote_id} -> '{requested_status}' par user {current_user.id}")
        quote = await get_accessible_quote(self.quote_repo, quote_id, current_user)
        current_version = quote.lock_version
        from_status = QuoteStatus(quote.status)

        if expected_version is not None and expected_version != current_version:
            logger.warning(f"[Lifecycle] Version périmée pour devis {quote_id}: {expected_version} != {current_version}")
            raise ConcurrentQuoteModificationException(quote_id)

        try:
            to_status = check_transition(from_status, requested_status)
        except IllegalQuoteTransitionException:
            logger.warning(f"[Lifecycle] Transition interdite devis {quote_id}: '{from_status.value}' -> '{requested_status}'")
            raise

        updated = await self.quote_repo.update_status(
            quote_id=quote_id,
            expected_version=current_version,
            from_status=from_status,
            to_status=to_status,
            actor_id=current_user.id,
        )
        logger.info(f"[Lifecycle] Devis {quote_id}: '{from_status.value}' -> '{to_status.value}'")
        return map_quote_to_read(updated)

    async def expire_overdue(self, now: Optional[datetime] = None) -> int:
        """
        Expire les devis envoyés dont la date d'expiration est dépassée.

        Idempotent: un devis déjà expiré, ou modifié entre la recherche et la
        mise à jour, est ignoré sans erreur. Retourne le nombre de devis expirés.
        """
        now = ensure_utc(now) if now else utcnow()
        overdue_ids = [q.id for q in await self.quote_repo.find_overdue_sent(now=now)]
        expired = 0
        for quote_id in overdue_ids:
            if await self.quote_repo.expire_if_sent(quote_id=quote_id, now=now):
                expired += 1
        logger.info(f"[Lifecycle] Passage d'expiration: {expired}/{len(overdue_ids)} devis expirés")
        return expired

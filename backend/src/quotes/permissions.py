import logging

from src.quotes.exceptions import QuoteNotFoundException, QuoteAccessForbiddenException
from src.quotes.interfaces.repositories import AbstractQuoteRepository
from src.quotes.models import Quote
from src.users.models import UserRead

logger = logging.getLogger(__name__)


def can_access_quote(quote: Quote, current_user: UserRead) -> bool:
    """Les rôles à visibilité complète voient tout, les autres uniquement leurs devis."""
    return current_user.sees_all_quotes or quote.owner_id == current_user.id


async def get_accessible_quote(
    quote_repo: AbstractQuoteRepository, quote_id: int, current_user: UserRead
) -> Quote:
    """Charge un devis avec ses lignes et vérifie que l'utilisateur y a accès."""
    quote = await quote_repo.get_by_id_with_items(quote_id=quote_id)
    if quote is None:
        logger.warning(f"Devis ID {quote_id} non trouvé.")
        raise QuoteNotFoundException(quote_id)
    if not can_access_quote(quote, current_user):
        logger.warning(f"Accès refusé devis {quote_id} pour user {current_user.id} ({current_user.role}).")
        raise QuoteAccessForbiddenException(quote_id)
    return quote

import logging
from datetime import timedelta
from typing import Optional, List, Sequence

from src.config import settings
from src.products.interfaces.repositories import AbstractProductRepository
from src.quotes.constants import QuoteStatus, STATUS_FILTER_ALL
from src.quotes.exceptions import (
    QuoteValidationException,
    InvalidQuoteStateException,
    ConcurrentQuoteModificationException,
)
from src.quotes.interfaces.repositories import AbstractQuoteRepository
from src.quotes.lifecycle import ensure_editable
from src.quotes.models import (
    Quote,
    QuoteCreate,
    QuoteUpdate,
    QuoteRead,
    QuoteEventRead,
    QuoteItemCreate,
    PaginatedQuoteRead,
    map_quote_to_read,
    build_quote_items,
)
from src.quotes.permissions import get_accessible_quote
from src.quotes.pricing import compute_quote
from src.quotes.utils import utcnow, ensure_utc, generate_quote_number, page_count
from src.users.models import UserRead

logger = logging.getLogger(__name__)

# Champs dont la modification impose de recalculer les totaux
PRICING_FIELDS = frozenset({"items", "shipping_cost"})
# Champs non nullables: une valeur nulle explicite est ignorée
REQUIRED_FIELDS = frozenset({"title", "items", "shipping_cost", "expiry_date"})


class QuoteService:
    """Service applicatif pour la gestion des devis (lecture, création, édition, suppression)."""

    def __init__(self,
                 quote_repo: AbstractQuoteRepository,
                 product_repo: AbstractProductRepository):
        """Initialise le service avec les repositories requis."""
        self.quote_repo = quote_repo
        self.product_repo = product_repo

    async def _check_products(self, items: Sequence[QuoteItemCreate]) -> None:
        """Les lignes liées au catalogue doivent référencer un produit existant."""
        for index, item in enumerate(items):
            if item.product_id is None:
                continue
            product = await self.product_repo.get_by_id(item.product_id)
            if product is None:
                logger.warning(f"[QuoteService] Produit ID {item.product_id} inconnu (ligne {index}).")
                raise QuoteValidationException(f"items[{index}].product_id", f"produit ID {item.product_id} inconnu")

    # --- Lecture ---

    async def get_quote(self, quote_id: int, current_user: UserRead) -> QuoteRead:
        """Récupère un devis par ID, vérifiant l'accès."""
        logger.debug(f"[QuoteService] Récupération devis ID: {quote_id} pour user: {current_user.id}")
        quote = await get_accessible_quote(self.quote_repo, quote_id, current_user)
        return map_quote_to_read(quote)

    async def list_quotes(
        self,
        current_user: UserRead,
        search: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = settings.DEFAULT_PAGE_SIZE,
    ) -> PaginatedQuoteRead:
        """Liste paginée des devis visibles par l'utilisateur."""
        status_filter = None
        if status and status != STATUS_FILTER_ALL:
            try:
                status_filter = QuoteStatus(status)
            except ValueError:
                raise QuoteValidationException("status", f"statut '{status}' inconnu")

        owner_id = None if current_user.sees_all_quotes else current_user.id
        offset = (page - 1) * limit
        logger.debug(
            f"[QuoteService] Listage devis user {current_user.id}: search={search!r}, "
            f"status={status_filter}, page={page}, limit={limit}"
        )
        quotes, total = await self.quote_repo.list_quotes(
            search=search.strip() if search else None,
            status=status_filter,
            owner_id=owner_id,
            offset=offset,
            limit=limit,
        )
        return PaginatedQuoteRead(
            items=[map_quote_to_read(q) for q in quotes],
            total=total,
            page=page,
            pages=page_count(total, limit),
            limit=limit,
        )

    async def get_history(self, quote_id: int, current_user: UserRead) -> List[QuoteEventRead]:
        """Historique des opérations d'un devis."""
        await get_accessible_quote(self.quote_repo, quote_id, current_user)
        events = await self.quote_repo.list_events(quote_id=quote_id)
        return [QuoteEventRead.model_validate(e) for e in events]

    # --- Écriture ---

    async def create_quote(self, quote_data: QuoteCreate, current_user: UserRead) -> QuoteRead:
        """Crée un devis en brouillon; les montants sont calculés côté serveur."""
        logger.info(f"[QuoteService] Tentative création devis '{quote_data.title}' par user {current_user.id}")

        owner_id = current_user.id
        if quote_data.owner_id is not None and quote_data.owner_id != current_user.id:
            if current_user.sees_all_quotes:
                owner_id = quote_data.owner_id
            else:
                logger.warning(
                    f"[QuoteService] User {current_user.id} ne peut pas attribuer un devis à {quote_data.owner_id}. "
                    f"Forçage à user {current_user.id}."
                )

        amounts = compute_quote(quote_data.items, quote_data.shipping_cost)
        await self._check_products(quote_data.items)

        now = utcnow()
        expiry_date = quote_data.expiry_date or now + timedelta(days=settings.QUOTE_DEFAULT_VALIDITY_DAYS)
        if expiry_date < now:
            raise QuoteValidationException("expiry_date", "doit être postérieure à la date d'émission")

        quote = Quote(
            quote_number=generate_quote_number(settings.QUOTE_NUMBER_PREFIX, now),
            version=1,
            title=quote_data.title,
            status=QuoteStatus.DRAFT.value,
            billing_address=quote_data.billing_address.model_dump() if quote_data.billing_address else None,
            shipping_cost=quote_data.shipping_cost,
            subtotal=amounts.subtotal,
            total_discount=amounts.total_discount,
            total_tax=amounts.total_tax,
            grand_total=amounts.grand_total,
            issue_date=now,
            expiry_date=expiry_date,
            owner_id=owner_id,
            notes=quote_data.notes,
            terms_and_conditions=quote_data.terms_and_conditions,
            status_changed_at=now,
        )
        items = build_quote_items(quote_data.items, amounts)
        created = await self.quote_repo.create_with_items(quote=quote, items=items, actor_id=current_user.id)
        logger.info(f"[QuoteService] Devis ID {created.id} ({created.quote_number}) créé pour user {owner_id}.")
        return map_quote_to_read(created)

    async def update_quote(self, quote_id: int, quote_data: QuoteUpdate, current_user: UserRead) -> QuoteRead:
        """Met à jour un devis selon les règles d'édition de son statut."""
        logger.info(f"[QuoteService] Tentative MAJ devis ID: {quote_id} par user {current_user.id}")
        quote = await get_accessible_quote(self.quote_repo, quote_id, current_user)
        current_version = quote.lock_version

        if quote_data.expected_version is not None and quote_data.expected_version != current_version:
            logger.warning(f"[QuoteService] Version périmée devis {quote_id}: {quote_data.expected_version} != {current_version}")
            raise ConcurrentQuoteModificationException(quote_id)

        changes = {
            field: value
            for field, value in quote_data.model_dump(exclude_unset=True, exclude={"expected_version"}).items()
            if not (value is None and field in REQUIRED_FIELDS)
        }
        if not changes:
            return map_quote_to_read(quote)

        ensure_editable(quote, changes.keys())

        values = {field: changes[field] for field in ("title", "notes", "terms_and_conditions", "billing_address") if field in changes}
        if "expiry_date" in changes:
            expiry_date = changes["expiry_date"]
            if expiry_date < ensure_utc(quote.issue_date):
                raise QuoteValidationException("expiry_date", "doit être postérieure à la date d'émission")
            values["expiry_date"] = expiry_date

        new_items = None
        if PRICING_FIELDS & changes.keys():
            item_inputs = quote_data.items if quote_data.items is not None else list(quote.items)
            shipping_cost = changes.get("shipping_cost", quote.shipping_cost)
            amounts = compute_quote(item_inputs, shipping_cost)
            if quote_data.items is not None:
                await self._check_products(quote_data.items)
                new_items = build_quote_items(quote_data.items, amounts)
            values.update(
                shipping_cost=shipping_cost,
                subtotal=amounts.subtotal,
                total_discount=amounts.total_discount,
                total_tax=amounts.total_tax,
                grand_total=amounts.grand_total,
            )

        updated = await self.quote_repo.update_quote(
            quote_id=quote_id,
            expected_version=current_version,
            values=values,
            items=new_items,
            actor_id=current_user.id,
        )
        logger.info(f"[QuoteService] Devis ID {quote_id} mis à jour ({', '.join(sorted(changes))}).")
        return map_quote_to_read(updated)

    async def delete_quote(self, quote_id: int, current_user: UserRead) -> None:
        """Supprime un devis original en brouillon; les révisions sont conservées."""
        logger.info(f"[QuoteService] Tentative suppression devis ID: {quote_id} par user {current_user.id}")
        quote = await get_accessible_quote(self.quote_repo, quote_id, current_user)
        status = QuoteStatus(quote.status)
        if status != QuoteStatus.DRAFT:
            logger.warning(f"[QuoteService] Suppression refusée: devis {quote_id} au statut '{status.value}'.")
            raise InvalidQuoteStateException(quote_id, status.value, "seul un devis en brouillon peut être supprimé")
        if quote.parent_quote_id is not None:
            # Le parent resterait 'revised' sans version active
            logger.warning(f"[QuoteService] Suppression refusée: devis {quote_id} est une révision de {quote.parent_quote_id}.")
            raise InvalidQuoteStateException(quote_id, status.value, "une révision ne peut pas être supprimée")

        await self.quote_repo.delete_draft(quote_id=quote_id, expected_version=quote.lock_version)
        logger.info(f"[QuoteService] Devis ID {quote_id} supprimé.")

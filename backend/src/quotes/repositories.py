import logging
from datetime import datetime
from typing import Optional, List, Tuple, Dict, Any, Sequence

from sqlalchemy import delete, func, or_, update
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from src.quotes.constants import QuoteStatus, QuoteEventType
from src.quotes.models import Quote, QuoteItem, QuoteEvent
from src.quotes.interfaces.repositories import AbstractQuoteRepository
from src.quotes.utils import utcnow
from src.quotes.exceptions import (
    QuoteNotFoundException,
    QuoteCreationFailedException,
    QuoteUpdateException,
    DuplicateQuoteException,
    ConcurrentQuoteModificationException,
    QuoteAlreadyConvertedException,
    InvalidQuoteStateException,
)

logger = logging.getLogger(__name__)


class SQLAlchemyQuoteRepository(AbstractQuoteRepository):
    """Implémentation SQLAlchemy du repository des devis."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # --- Lectures ---

    async def get_by_id_with_items(self, *, quote_id: int) -> Optional[Quote]:
        """Récupère un devis par son ID, incluant ses items (valeurs relues en base)."""
        statement = (
            select(Quote)
            .where(Quote.id == quote_id)
            .options(selectinload(Quote.items))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(statement)
        return result.scalars().one_or_none()

    async def list_quotes(
        self,
        *,
        search: Optional[str] = None,
        status: Optional[QuoteStatus] = None,
        owner_id: Optional[int] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Quote], int]:
        """Liste les devis filtrés par recherche, statut et propriétaire."""
        conditions = []
        if search:
            # % et _ saisis par l'utilisateur sont cherchés littéralement
            escaped = search.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            pattern = f"%{escaped}%"
            conditions.append(or_(
                func.lower(Quote.title).like(pattern, escape="\\"),
                func.lower(Quote.quote_number).like(pattern, escape="\\"),
            ))
        if status is not None:
            conditions.append(Quote.status == status.value)
        if owner_id is not None:
            conditions.append(Quote.owner_id == owner_id)

        count_stmt = select(func.count()).select_from(Quote).where(*conditions)
        total = (await self.db.execute(count_stmt)).scalar_one()

        statement = (
            select(Quote)
            .where(*conditions)
            .options(selectinload(Quote.items))
            .order_by(Quote.created_at.desc(), Quote.id.desc())
            .offset(offset)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(statement)
        return list(result.scalars().all()), total

    async def find_active_child(self, *, quote_id: int) -> Optional[Quote]:
        statement = select(Quote).where(Quote.parent_quote_id == quote_id).limit(1)
        result = await self.db.execute(statement)
        return result.scalars().first()

    async def find_overdue_sent(self, *, now: datetime) -> List[Quote]:
        statement = (
            select(Quote)
            .where(Quote.status == QuoteStatus.SENT.value, Quote.expiry_date < now)
            .order_by(Quote.id)
        )
        result = await self.db.execute(statement)
        return list(result.scalars().all())

    async def list_events(self, *, quote_id: int) -> List[QuoteEvent]:
        statement = (
            select(QuoteEvent)
            .where(QuoteEvent.quote_id == quote_id)
            .order_by(QuoteEvent.created_at, QuoteEvent.id)
        )
        result = await self.db.execute(statement)
        return list(result.scalars().all())

    # --- Écritures ---

    def add_event(
        self,
        *,
        quote_id: int,
        event_type: QuoteEventType,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        actor_id: Optional[int] = None,
        detail: Optional[str] = None,
    ) -> QuoteEvent:
        event = QuoteEvent(
            quote_id=quote_id,
            event_type=QuoteEventType(event_type).value,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            detail=detail,
        )
        self.db.add(event)
        return event

    def _add_items(self, quote_id: int, items: Sequence[QuoteItem]) -> None:
        for position, item in enumerate(items):
            item.quote_id = quote_id
            item.position = position
            self.db.add(item)

    async def _reload(self, quote_id: int) -> Quote:
        quote = await self.get_by_id_with_items(quote_id=quote_id)
        if quote is None:
            raise QuoteNotFoundException(quote_id)
        return quote

    async def _raise_write_conflict(self, quote_id: int) -> None:
        """Après une mise à jour conditionnelle sans effet: devis disparu ou modifié entre-temps."""
        await self.db.rollback()
        exists = await self.db.execute(select(Quote.id).where(Quote.id == quote_id))
        if exists.scalar_one_or_none() is None:
            raise QuoteNotFoundException(quote_id)
        logger.warning(f"[QuoteRepo] Conflit de version sur le devis {quote_id}")
        raise ConcurrentQuoteModificationException(quote_id)

    async def create_with_items(self, *, quote: Quote, items: Sequence[QuoteItem], actor_id: Optional[int]) -> Quote:
        """Crée un nouveau devis avec ses items dans une transaction."""
        quote_number = quote.quote_number
        try:
            self.db.add(quote)
            await self.db.flush()  # Pour obtenir l'ID du devis
            if not quote.id:
                raise QuoteCreationFailedException(detail="ID du devis non disponible après flush.")

            self._add_items(quote.id, items)
            self.add_event(
                quote_id=quote.id,
                event_type=QuoteEventType.CREATED,
                to_status=QuoteStatus(quote.status).value,
                actor_id=actor_id,
                detail=quote_number,
            )
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(f"[QuoteRepo] Erreur d'intégrité création devis {quote_number}: {e}")
            if "quote_number" in str(e).lower() or "unique" in str(e).lower():
                raise DuplicateQuoteException()
            raise QuoteCreationFailedException(detail=f"Erreur d'intégrité: {e}")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[QuoteRepo] Erreur DB création devis: {e}", exc_info=True)
            raise QuoteCreationFailedException(detail=f"Erreur base de données: {e}")

        return await self._reload(quote.id)

    async def update_quote(
        self,
        *,
        quote_id: int,
        expected_version: int,
        values: Dict[str, Any],
        items: Optional[Sequence[QuoteItem]] = None,
        actor_id: Optional[int] = None,
    ) -> Quote:
        """Met à jour un devis si sa version n'a pas changé; remplace les lignes si fournies."""
        statement = (
            update(Quote)
            .where(Quote.id == quote_id, Quote.lock_version == expected_version)
            .values(**values, lock_version=expected_version + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(statement)
            if result.rowcount != 1:
                await self._raise_write_conflict(quote_id)

            if items is not None:
                await self.db.execute(delete(QuoteItem).where(QuoteItem.quote_id == quote_id))
                self._add_items(quote_id, items)

            changed = sorted(values.keys()) + (["items"] if items is not None else [])
            self.add_event(
                quote_id=quote_id,
                event_type=QuoteEventType.UPDATED,
                actor_id=actor_id,
                detail=", ".join(changed)[:500],
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[QuoteRepo] Erreur DB MAJ devis {quote_id}: {e}", exc_info=True)
            raise QuoteUpdateException(quote_id=quote_id, detail=str(e))

        return await self._reload(quote_id)

    async def update_status(
        self,
        *,
        quote_id: int,
        expected_version: int,
        from_status: QuoteStatus,
        to_status: QuoteStatus,
        actor_id: Optional[int] = None,
        event_type: QuoteEventType = QuoteEventType.STATUS_CHANGED,
    ) -> Quote:
        """Change le statut d'un devis (compare-and-swap sur statut et version)."""
        now = utcnow()
        statement = (
            update(Quote)
            .where(
                Quote.id == quote_id,
                Quote.lock_version == expected_version,
                Quote.status == from_status.value,
            )
            .values(
                status=to_status.value,
                status_changed_at=now,
                updated_at=now,
                lock_version=expected_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(statement)
            if result.rowcount != 1:
                await self._raise_write_conflict(quote_id)
            self.add_event(
                quote_id=quote_id,
                event_type=event_type,
                from_status=from_status.value,
                to_status=to_status.value,
                actor_id=actor_id,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[QuoteRepo] Erreur DB MAJ statut devis {quote_id}: {e}", exc_info=True)
            raise QuoteUpdateException(quote_id=quote_id, detail=str(e))

        return await self._reload(quote_id)

    async def create_revision(
        self,
        *,
        source: Quote,
        expected_version: int,
        child: Quote,
        items: Sequence[QuoteItem],
        actor_id: Optional[int] = None,
    ) -> Quote:
        """Insère la révision et passe la source en 'revised' dans une seule transaction."""
        source_id = source.id
        source_status = QuoteStatus(source.status)
        now = utcnow()
        statement = (
            update(Quote)
            .where(
                Quote.id == source_id,
                Quote.lock_version == expected_version,
                Quote.status == source_status.value,
            )
            .values(
                status=QuoteStatus.REVISED.value,
                status_changed_at=now,
                updated_at=now,
                lock_version=expected_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(statement)
            if result.rowcount != 1:
                await self._raise_write_conflict(source_id)

            self.db.add(child)
            await self.db.flush()
            self._add_items(child.id, items)
            self.add_event(
                quote_id=source_id,
                event_type=QuoteEventType.REVISED,
                from_status=source_status.value,
                to_status=QuoteStatus.REVISED.value,
                actor_id=actor_id,
                detail=f"Révision {child.quote_number} (v{child.version})",
            )
            self.add_event(
                quote_id=child.id,
                event_type=QuoteEventType.CREATED,
                to_status=QuoteStatus(child.status).value,
                actor_id=actor_id,
                detail=f"Révision de {source.quote_number} (v{source.version})",
            )
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(f"[QuoteRepo] Erreur d'intégrité révision devis {source_id}: {e}")
            raise DuplicateQuoteException()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[QuoteRepo] Erreur DB révision devis {source_id}: {e}", exc_info=True)
            raise QuoteCreationFailedException(detail=f"Erreur base de données: {e}")

        return await self._reload(child.id)

    async def attach_deal(self, *, quote_id: int, deal_id: int, actor_id: Optional[int] = None) -> Quote:
        """
        Associe le deal au devis par une mise à jour conditionnelle
        (deal_id IS NULL et statut 'accepted').

        Le deal a été ajouté à la même session: il est commité avec le devis,
        ou annulé avec lui si la condition échoue.
        """
        statement = (
            update(Quote)
            .where(
                Quote.id == quote_id,
                Quote.deal_id.is_(None),
                Quote.status == QuoteStatus.ACCEPTED.value,
            )
            .values(deal_id=deal_id, updated_at=utcnow(), lock_version=Quote.lock_version + 1)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(statement)
            if result.rowcount != 1:
                await self.db.rollback()
                current = await self.get_by_id_with_items(quote_id=quote_id)
                if current is None:
                    raise QuoteNotFoundException(quote_id)
                if current.deal_id is not None:
                    raise QuoteAlreadyConvertedException(quote_id, current.deal_id)
                raise InvalidQuoteStateException(quote_id, current.status, "seul un devis accepté peut être converti")

            self.add_event(
                quote_id=quote_id,
                event_type=QuoteEventType.CONVERTED,
                actor_id=actor_id,
                detail=f"Deal ID {deal_id}",
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[QuoteRepo] Erreur DB conversion devis {quote_id}: {e}", exc_info=True)
            raise QuoteUpdateException(quote_id=quote_id, detail=str(e))

        return await self._reload(quote_id)

    async def delete_draft(self, *, quote_id: int, expected_version: int) -> None:
        """Supprime un devis en brouillon, ses lignes et son historique."""
        try:
            # Lignes et historique d'abord (clés étrangères), annulés si le devis a changé
            await self.db.execute(delete(QuoteItem).where(QuoteItem.quote_id == quote_id))
            await self.db.execute(delete(QuoteEvent).where(QuoteEvent.quote_id == quote_id))
            result = await self.db.execute(
                delete(Quote)
                .where(
                    Quote.id == quote_id,
                    Quote.lock_version == expected_version,
                    Quote.status == QuoteStatus.DRAFT.value,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self._raise_write_conflict(quote_id)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[QuoteRepo] Erreur DB suppression devis {quote_id}: {e}", exc_info=True)
            raise QuoteUpdateException(quote_id=quote_id, detail=str(e))

    async def expire_if_sent(self, *, quote_id: int, now: datetime) -> bool:
        """Expire le devis s'il est toujours envoyé et échu. Retourne False sinon."""
        statement = (
            update(Quote)
            .where(
                Quote.id == quote_id,
                Quote.status == QuoteStatus.SENT.value,
                Quote.expiry_date < now,
            )
            .values(
                status=QuoteStatus.EXPIRED.value,
                status_changed_at=now,
                updated_at=now,
                lock_version=Quote.lock_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(statement)
            if result.rowcount != 1:
                await self.db.rollback()
                return False
            self.add_event(
                quote_id=quote_id,
                event_type=QuoteEventType.EXPIRED,
                from_status=QuoteStatus.SENT.value,
                to_status=QuoteStatus.EXPIRED.value,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[QuoteRepo] Erreur DB expiration devis {quote_id}: {e}", exc_info=True)
            raise QuoteUpdateException(quote_id=quote_id, detail=str(e))
        return True

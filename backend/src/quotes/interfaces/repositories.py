from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Tuple, Dict, Any, Sequence

from src.quotes.constants import QuoteStatus, QuoteEventType
from src.quotes.models import Quote, QuoteItem, QuoteEvent


class AbstractQuoteRepository(ABC):
    """
    Interface abstraite pour le repository des devis.

    Chaque écriture est conditionnelle sur `lock_version` (verrouillage
    optimiste) et commite sa propre transaction.
    """

    @abstractmethod
    async def get_by_id_with_items(self, *, quote_id: int) -> Optional[Quote]:
        """Récupère un devis par son ID, incluant ses items."""
        pass

    @abstractmethod
    async def list_quotes(
        self,
        *,
        search: Optional[str] = None,
        status: Optional[QuoteStatus] = None,
        owner_id: Optional[int] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Quote], int]:
        """Liste les devis filtrés (plus récents d'abord) et retourne le total."""
        pass

    @abstractmethod
    async def create_with_items(self, *, quote: Quote, items: Sequence[QuoteItem], actor_id: Optional[int]) -> Quote:
        """Crée un devis et ses lignes dans une transaction."""
        pass

    @abstractmethod
    async def update_quote(
        self,
        *,
        quote_id: int,
        expected_version: int,
        values: Dict[str, Any],
        items: Optional[Sequence[QuoteItem]] = None,
        actor_id: Optional[int] = None,
    ) -> Quote:
        """Met à jour les champs (et éventuellement remplace les lignes) d'un devis."""
        pass

    @abstractmethod
    async def update_status(
        self,
        *,
        quote_id: int,
        expected_version: int,
        from_status: QuoteStatus,
        to_status: QuoteStatus,
        actor_id: Optional[int] = None,
    ) -> Quote:
        """Change le statut si le devis est toujours dans `from_status` à la version attendue."""
        pass

    @abstractmethod
    async def create_revision(
        self,
        *,
        source: Quote,
        expected_version: int,
        child: Quote,
        items: Sequence[QuoteItem],
        actor_id: Optional[int] = None,
    ) -> Quote:
        """Crée la révision d'un devis et passe la source en 'revised' dans la même transaction."""
        pass

    @abstractmethod
    async def find_active_child(self, *, quote_id: int) -> Optional[Quote]:
        """Retourne la révision existante d'un devis, s'il y en a une."""
        pass

    @abstractmethod
    async def attach_deal(self, *, quote_id: int, deal_id: int, actor_id: Optional[int] = None) -> Quote:
        """Associe un deal au devis accepté s'il n'en a pas encore."""
        pass

    @abstractmethod
    async def delete_draft(self, *, quote_id: int, expected_version: int) -> None:
        """Supprime un devis en brouillon avec ses lignes et son historique."""
        pass

    @abstractmethod
    async def find_overdue_sent(self, *, now: datetime) -> List[Quote]:
        """Liste les devis envoyés dont la date d'expiration est dépassée."""
        pass

    @abstractmethod
    async def expire_if_sent(self, *, quote_id: int, now: datetime) -> bool:
        """Passe le devis en 'expired' s'il est toujours envoyé et échu."""
        pass

    @abstractmethod
    async def list_events(self, *, quote_id: int) -> List[QuoteEvent]:
        """Historique d'un devis, du plus ancien au plus récent."""
        pass

    @abstractmethod
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
        """Ajoute un événement à la transaction en cours (sans commit)."""
        pass

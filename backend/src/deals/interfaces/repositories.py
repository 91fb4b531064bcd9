from abc import ABC, abstractmethod
from typing import Optional

from src.deals.models import Deal


class AbstractDealRepository(ABC):
    """Interface abstraite pour le repository des deals."""

    @abstractmethod
    async def get_by_id(self, deal_id: int) -> Optional[Deal]:
        """Récupère un deal par son ID."""
        pass

    @abstractmethod
    async def add(self, deal: Deal) -> Deal:
        """
        Ajoute un deal à la transaction courante sans la commiter.

        Le commit (ou le rollback) revient à l'appelant, qui partage la session.
        Lève DuplicateDealException si un deal existe déjà pour le même devis.
        """
        pass

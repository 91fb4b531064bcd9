from abc import ABC, abstractmethod
from typing import Optional, List, Tuple

from src.products.models import Product


class AbstractProductRepository(ABC):
    """Interface abstraite pour le repository des produits (lecture seule)."""

    @abstractmethod
    async def get_by_id(self, product_id: int) -> Optional[Product]:
        """Récupère un produit par son ID."""
        pass

    @abstractmethod
    async def list_active(self, *, offset: int = 0, limit: int = 500) -> Tuple[List[Product], int]:
        """Liste les produits actifs, triés par nom."""
        pass

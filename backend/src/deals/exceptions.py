"""Exceptions spécifiques au module Deal."""
from typing import Optional


class DealDomainException(Exception):
    """Classe de base pour les exceptions du module Deal."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class DealCreationFailedException(DealDomainException):
    """Levée en cas d'erreur lors de l'insertion d'un deal."""
    def __init__(self, detail: str = "Erreur lors de la création du deal."):
        super().__init__(detail)
        self.detail = detail


class DuplicateDealException(DealDomainException):
    """Levée lorsqu'un deal existe déjà pour le devis (contrainte unique sur quote_id)."""
    def __init__(self, quote_id: Optional[int]):
        super().__init__(f"Un deal existe déjà pour le devis ID {quote_id}.")
        self.quote_id = quote_id

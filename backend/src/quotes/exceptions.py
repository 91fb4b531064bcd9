"""Exceptions spécifiques au module Quote."""

from typing import Optional


class QuoteDomainException(Exception):
    """Classe de base pour les exceptions du module Quote."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class QuoteValidationException(QuoteDomainException):
    """Levée lorsqu'une donnée d'entrée est invalide (quantité, prix, pourcentage...)."""
    def __init__(self, field: str, detail: str):
        super().__init__(f"Champ '{field}' invalide: {detail}")
        self.field = field
        self.detail = detail


class QuoteNotFoundException(QuoteDomainException):
    """Levée lorsqu'un devis spécifique n'est pas trouvé."""
    def __init__(self, quote_id: int):
        super().__init__(f"Devis avec ID {quote_id} non trouvé.")
        self.quote_id = quote_id


class QuoteAccessForbiddenException(QuoteDomainException):
    """Levée lorsque l'utilisateur n'a pas accès au devis."""
    def __init__(self, quote_id: int):
        super().__init__(f"Accès non autorisé au devis ID {quote_id}.")
        self.quote_id = quote_id


class InvalidQuoteStateException(QuoteDomainException):
    """Levée lorsqu'une opération n'est pas permise dans le statut courant du devis."""
    def __init__(self, quote_id: int, status: str, detail: str):
        super().__init__(f"Devis ID {quote_id} (statut '{status}'): {detail}")
        self.quote_id = quote_id
        self.status = status
        self.detail = detail


class IllegalQuoteTransitionException(QuoteDomainException):
    """Levée lorsque la transition de statut demandée n'est pas dans la table autorisée."""
    def __init__(self, from_status: str, to_status: str):
        super().__init__(f"Transition de statut interdite: '{from_status}' -> '{to_status}'.")
        self.from_status = from_status
        self.to_status = to_status


class QuoteAlreadyConvertedException(QuoteDomainException):
    """Levée lorsqu'un devis a déjà été converti en deal."""
    def __init__(self, quote_id: int, deal_id: int):
        super().__init__(f"Devis ID {quote_id} déjà converti en deal ID {deal_id}.")
        self.quote_id = quote_id
        self.deal_id = deal_id


class ConcurrentQuoteModificationException(QuoteDomainException):
    """Levée lorsque le devis a été modifié entre la lecture et l'écriture."""
    def __init__(self, quote_id: int):
        super().__init__(f"Devis ID {quote_id} modifié par une autre requête. Rechargez-le et réessayez.")
        self.quote_id = quote_id


class QuoteRevisionConflictException(QuoteDomainException):
    """Levée lorsqu'un devis a déjà été révisé (une seule révision active par devis)."""
    def __init__(self, quote_id: int, child_id: Optional[int] = None):
        detail = f" (révision ID {child_id})" if child_id else ""
        super().__init__(f"Devis ID {quote_id} déjà révisé{detail}.")
        self.quote_id = quote_id
        self.child_id = child_id


class QuoteCreationFailedException(QuoteDomainException):
    """Levée en cas d'erreur lors de la création d'un devis."""
    def __init__(self, detail: str = "Erreur lors de la création du devis."):
        super().__init__(detail)
        self.detail = detail


class DuplicateQuoteException(QuoteDomainException):
    """Levée en cas de tentative de création d'un devis qui violerait une contrainte d'unicité."""
    def __init__(self, detail: str = "Un devis avec ce numéro existe déjà."):
        super().__init__(detail)
        self.detail = detail


class QuoteUpdateException(QuoteDomainException):
    """Levée en cas d'erreur générale lors de la mise à jour d'un devis."""
    def __init__(self, quote_id: Optional[int] = None, detail: str = "Erreur lors de la mise à jour du devis."):
        message = f"Erreur MAJ devis{f' ID {quote_id}' if quote_id else ''}: {detail}"
        super().__init__(message)
        self.quote_id = quote_id
        self.detail = detail

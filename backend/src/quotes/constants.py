"""Constantes du module Quote: statuts, transitions autorisées et types d'événements."""
from enum import Enum
from typing import Dict, FrozenSet


class QuoteStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    REVISED = "revised"


# Table des transitions (statut courant -> statuts demandables)
ALLOWED_TRANSITIONS: Dict[QuoteStatus, FrozenSet[QuoteStatus]] = {
    QuoteStatus.DRAFT: frozenset({QuoteStatus.PENDING, QuoteStatus.SENT}),
    QuoteStatus.PENDING: frozenset({QuoteStatus.SENT, QuoteStatus.REJECTED}),
    QuoteStatus.SENT: frozenset({QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED}),
    QuoteStatus.ACCEPTED: frozenset(),
    QuoteStatus.REJECTED: frozenset(),
    QuoteStatus.EXPIRED: frozenset(),
    QuoteStatus.REVISED: frozenset(),
}

TERMINAL_STATUSES: FrozenSet[QuoteStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


class QuoteEventType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    REVISED = "revised"
    CONVERTED = "converted"
    EXPIRED = "expired"


# Valeur du filtre de liste signifiant "tous les statuts"
STATUS_FILTER_ALL = "all"

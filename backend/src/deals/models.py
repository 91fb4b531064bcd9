from enum import Enum
from typing import Optional, List, Dict, Any
from decimal import Decimal
from datetime import datetime, timezone

from sqlalchemy import DateTime, String, JSON
from sqlmodel import SQLModel, Field


class DealStage(str, Enum):
    PROSPECTING = "prospecting"
    QUALIFICATION = "qualification"
    NEEDS_ANALYSIS = "needs_analysis"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"


# Probabilité de gain associée à chaque étape du pipeline
STAGE_PROBABILITIES: Dict[DealStage, int] = {
    DealStage.PROSPECTING: 10,
    DealStage.QUALIFICATION: 20,
    DealStage.NEEDS_ANALYSIS: 40,
    DealStage.PROPOSAL: 60,
    DealStage.NEGOTIATION: 80,
    DealStage.CLOSED_WON: 100,
    DealStage.CLOSED_LOST: 0,
}


class DealBase(SQLModel):
    """Base pour les champs de la table Deal."""
    title: str = Field(..., min_length=1, max_length=255)
    value: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    currency: str = Field(default="USD", max_length=3)
    stage: DealStage = Field(default=DealStage.PROSPECTING, sa_type=String(30), index=True)
    probability: int = Field(default=10, ge=0, le=100)
    owner_id: int = Field(foreign_key="users.id", index=True)
    # Devis d'origine (unique: un devis ne produit qu'un seul deal)
    quote_id: Optional[int] = Field(default=None, foreign_key="quotes.id", unique=True, index=True)
    notes: Optional[str] = Field(default=None)
    products: List[Dict[str, Any]] = Field(default_factory=list, sa_type=JSON)


class Deal(DealBase, table=True):
    """Modèle de table pour les deals du pipeline commercial."""
    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
        nullable=False,
    )

    __tablename__ = "deals"


class DealRead(DealBase):
    """Schéma de réponse d'un deal."""
    id: int
    created_at: datetime

from typing import Optional, List, Dict, Any
from decimal import Decimal
from datetime import datetime

from pydantic import ConfigDict, field_validator
from sqlalchemy import DateTime, String, JSON
from sqlmodel import SQLModel, Field, Relationship

from src.quotes.constants import QuoteStatus, QuoteEventType
from src.quotes.pricing import compute_item, QuoteAmounts
from src.quotes.utils import utcnow, ensure_utc

# --- Adresse de facturation (stockée en JSON sur le devis) ---

class BillingAddress(SQLModel):
    """Adresse de facturation du client."""
    name: Optional[str] = Field(default=None, max_length=255)
    company: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    street: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    zip_code: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default=None, max_length=100)

# --- Modèles pour QuoteItem ---

class QuoteItemBase(SQLModel):
    """Modèle de base pour une ligne de devis (données saisies)."""
    product_id: Optional[int] = Field(default=None, foreign_key="products.id", index=True)
    product_name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(default=None)
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100, max_digits=5, decimal_places=2)
    tax_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100, max_digits=5, decimal_places=2)

    model_config = ConfigDict(from_attributes=True)

class QuoteItem(QuoteItemBase, table=True):
    """Modèle de table pour une ligne de devis."""
    id: Optional[int] = Field(default=None, primary_key=True)
    quote_id: int = Field(foreign_key="quotes.id", index=True)
    position: int = Field(default=0)
    # Calculé côté serveur, jamais repris du client
    line_total: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)

    quote: Optional["Quote"] = Relationship(back_populates="items")

    __tablename__ = "quote_items"

class QuoteItemCreate(QuoteItemBase):
    """Schéma pour créer une ligne de devis. Les montants calculés envoyés par le client sont ignorés."""
    pass

class QuoteItemRead(SQLModel):
    """Schéma pour lire une ligne de devis, avec les montants calculés."""
    id: int
    position: int
    product_id: Optional[int] = None
    product_name: str
    description: Optional[str] = None
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal
    tax_percent: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal

# --- Modèles pour Quote ---

class QuoteBase(SQLModel):
    """Modèle de base pour un devis."""
    title: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = Field(default=None)
    terms_and_conditions: Optional[str] = Field(default=None)
    shipping_cost: Decimal = Field(default=Decimal("0.00"), ge=0, max_digits=12, decimal_places=2)

    model_config = ConfigDict(from_attributes=True)

class Quote(QuoteBase, table=True):
    """Modèle de table pour un devis."""
    id: Optional[int] = Field(default=None, primary_key=True)
    quote_number: str = Field(..., max_length=50, unique=True, index=True)
    version: int = Field(default=1)
    parent_quote_id: Optional[int] = Field(default=None, foreign_key="quotes.id", index=True)
    status: QuoteStatus = Field(default=QuoteStatus.DRAFT, sa_type=String(20), index=True)
    billing_address: Optional[Dict[str, Any]] = Field(default=None, sa_type=JSON)

    subtotal: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    total_discount: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    total_tax: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    grand_total: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)

    issue_date: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), nullable=False)
    expiry_date: datetime = Field(..., sa_type=DateTime(timezone=True), nullable=False)
    owner_id: int = Field(foreign_key="users.id", index=True)
    # Pas de clé étrangère: deals.quote_id référence déjà le devis
    deal_id: Optional[int] = Field(default=None, index=True)

    status_changed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    lock_version: int = Field(default=1, nullable=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), nullable=False)

    # Relations (chargement explicite via selectinload dans le repository)
    items: List["QuoteItem"] = Relationship(
        back_populates="quote",
        sa_relationship_kwargs={"order_by": "QuoteItem.position", "lazy": "selectin"},
    )

    __tablename__ = "quotes"

class QuoteEvent(SQLModel, table=True):
    """Journal des opérations sur un devis (création, transitions, révision, conversion)."""
    id: Optional[int] = Field(default=None, primary_key=True)
    quote_id: int = Field(foreign_key="quotes.id", index=True)
    event_type: QuoteEventType = Field(sa_type=String(30))
    from_status: Optional[str] = Field(default=None, max_length=20)
    to_status: Optional[str] = Field(default=None, max_length=20)
    actor_id: Optional[int] = Field(default=None, foreign_key="users.id")
    detail: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), nullable=False)

    __tablename__ = "quote_events"

# --- Schémas API ---

class QuoteCreate(SQLModel):
    """Schéma pour créer un nouveau devis via l'API. Le statut est toujours 'draft'."""
    title: str = Field(..., min_length=1, max_length=255)
    items: List[QuoteItemCreate] = Field(..., min_length=1)
    billing_address: Optional[BillingAddress] = None
    shipping_cost: Decimal = Field(default=Decimal("0.00"), ge=0, max_digits=12, decimal_places=2)
    expiry_date: Optional[datetime] = None
    notes: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    # Pris en compte uniquement pour les rôles à visibilité complète
    owner_id: Optional[int] = None

    @field_validator("expiry_date")
    @classmethod
    def _expiry_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

class QuoteUpdate(SQLModel):
    """Schéma de mise à jour partielle d'un devis."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    items: Optional[List[QuoteItemCreate]] = Field(default=None, min_length=1)
    billing_address: Optional[BillingAddress] = None
    shipping_cost: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    expiry_date: Optional[datetime] = None
    notes: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    expected_version: Optional[int] = Field(default=None, ge=1)

    @field_validator("expiry_date")
    @classmethod
    def _expiry_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

class QuoteStatusUpdate(SQLModel):
    """Schéma pour demander un changement de statut."""
    status: QuoteStatus
    expected_version: Optional[int] = Field(default=None, ge=1)

class QuoteRead(SQLModel):
    """Schéma pour lire un devis depuis l'API."""
    id: int
    quote_number: str
    version: int
    parent_quote_id: Optional[int] = None
    title: str
    status: QuoteStatus
    billing_address: Optional[BillingAddress] = None
    shipping_cost: Decimal
    subtotal: Decimal
    total_discount: Decimal
    total_tax: Decimal
    grand_total: Decimal
    issue_date: datetime
    expiry_date: datetime
    owner_id: int
    deal_id: Optional[int] = None
    notes: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    status_changed_at: Optional[datetime] = None
    lock_version: int
    created_at: datetime
    updated_at: datetime
    items: List[QuoteItemRead] = []

    @field_validator("issue_date", "expiry_date", "status_changed_at", "created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

class PaginatedQuoteRead(SQLModel):
    """Schéma pour une réponse paginée de devis."""
    items: List[QuoteRead]
    total: int
    page: int
    pages: int
    limit: int

class QuoteEventRead(SQLModel):
    """Entrée de l'historique d'un devis."""
    id: int
    quote_id: int
    event_type: QuoteEventType
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    actor_id: Optional[int] = None
    detail: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("created_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

class DealConversionRead(SQLModel):
    """Résultat de la conversion d'un devis en deal."""
    quote_id: int
    deal_id: int
    created: bool

class ExpirySweepRead(SQLModel):
    """Résultat d'un passage d'expiration des devis."""
    expired: int


def map_quote_to_read(quote: Quote) -> QuoteRead:
    """Mappe un devis de la DB vers QuoteRead, avec les montants calculés de chaque ligne."""
    items_read = []
    for item in quote.items or []:
        amounts = compute_item(item)
        items_read.append(QuoteItemRead(
            id=item.id,
            position=item.position,
            product_id=item.product_id,
            product_name=item.product_name,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            discount_percent=item.discount_percent,
            tax_percent=item.tax_percent,
            subtotal=amounts.subtotal,
            discount_amount=amounts.discount_amount,
            tax_amount=amounts.tax_amount,
            line_total=item.line_total,
        ))
    data = {name: getattr(quote, name) for name in QuoteRead.model_fields if name != "items"}
    data["items"] = items_read
    return QuoteRead.model_validate(data)


def build_quote_items(inputs: List[Any], amounts: QuoteAmounts) -> List[QuoteItem]:
    """Construit les lignes à persister; line_total vient toujours du calcul serveur."""
    return [
        QuoteItem(
            product_id=data.product_id,
            product_name=data.product_name,
            description=data.description,
            quantity=data.quantity,
            unit_price=data.unit_price,
            discount_percent=data.discount_percent,
            tax_percent=data.tax_percent,
            position=position,
            line_total=item_amounts.line_total,
        )
        for position, (data, item_amounts) in enumerate(zip(inputs, amounts.items))
    ]

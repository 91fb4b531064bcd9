from typing import Optional, List
from decimal import Decimal
from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field

# --- Modèle Product SQLModel (catalogue utilisé pour préremplir les lignes de devis) ---

class ProductBase(SQLModel):
    name: str = Field(index=True, max_length=255)
    sku: Optional[str] = Field(default=None, index=True, unique=True, max_length=100)
    description: Optional[str] = Field(default=None)
    category: Optional[str] = Field(default=None, max_length=100)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100, max_digits=5, decimal_places=2)
    is_active: bool = Field(default=True, index=True)

class Product(ProductBase, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
        nullable=False,
    )

    __tablename__ = "products"

# Schémas API pour Product
class ProductRead(ProductBase):
    id: int

class ActiveProductRead(SQLModel):
    """Projection légère pour la saisie des lignes de devis."""
    id: int
    name: str
    sku: Optional[str] = None
    description: Optional[str] = None
    unit_price: Decimal
    tax_rate: Decimal

class ActiveProductList(SQLModel):
    items: List[ActiveProductRead]
    total: int

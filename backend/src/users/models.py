# src/users/models.py
"""
Module définissant les modèles SQLModel pour l'entité User.

Ce module contient :
- UserRole : rôles applicatifs (contrôle d'accès aux devis).
- UserBase : Classe SQLModel de base avec les champs communs.
- User : Modèle de table SQLModel (table=True) héritant de UserBase.
- UserRead : Schéma exposé par l'API et transmis aux services.
"""
from enum import Enum
from typing import Optional
from datetime import datetime, timezone

from sqlalchemy import DateTime, String
from sqlmodel import SQLModel, Field


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    HR = "HR"
    EMPLOYEE = "EMPLOYEE"
    SALES = "SALES"
    SUPPORT = "SUPPORT"
    INTERN = "INTERN"


# Rôles autorisés à créer/modifier des devis
WRITE_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER, UserRole.HR, UserRole.EMPLOYEE, UserRole.SALES})
# Rôles autorisés à supprimer
DELETE_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER, UserRole.HR})
# Rôles voyant les devis de tous les utilisateurs
FULL_VISIBILITY_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER, UserRole.HR})


class UserBase(SQLModel):
    """Modèle SQLModel de base pour un utilisateur (données communes, Pydantic)."""
    email: str = Field(unique=True, index=True, max_length=255, nullable=False)
    full_name: Optional[str] = Field(default=None, max_length=100)
    role: UserRole = Field(default=UserRole.EMPLOYEE, sa_type=String(20), nullable=False)
    is_active: bool = Field(default=True, nullable=False)


# ----- Modèle de Table -----
class User(UserBase, table=True):
    """Modèle de table SQLModel pour les utilisateurs."""
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True, index=True)
    password_hash: str = Field(nullable=False, max_length=255)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
        nullable=False,
    )


# ----- Schémas API -----
class UserRead(UserBase):
    """Schéma Pydantic/SQLModel pour lire les données d'un utilisateur."""
    id: int

    @property
    def can_write(self) -> bool:
        return UserRole(self.role) in WRITE_ROLES

    @property
    def can_delete(self) -> bool:
        return UserRole(self.role) in DELETE_ROLES

    @property
    def sees_all_quotes(self) -> bool:
        return UserRole(self.role) in FULL_VISIBILITY_ROLES

"""
Schéma de réponse de l'endpoint de login.
"""
from sqlmodel import SQLModel, Field


class Token(SQLModel):
    """Token d'accès JWT et sa durée de validité en secondes."""
    access_token: str
    token_type: str = Field(default="bearer")
    expires_in: int

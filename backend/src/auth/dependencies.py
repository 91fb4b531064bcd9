"""
Module définissant les dépendances FastAPI pour l'authentification.

Fournit des dépendances pour:
- Le service d'authentification (AuthService)
- L'obtention de l'utilisateur courant à partir du token JWT
- Le contrôle des rôles (écriture, suppression, admin)

L'identité résolue ici est transmise explicitement aux services métier.
"""
import logging
from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from fastcrud import FastCRUD
from sqlalchemy.ext.asyncio import AsyncSession

from src.auth.service import AuthService
from src.auth.config import OAUTH2_TOKEN_URL
from src.auth.exceptions import (
    TokenMissingException, TokenInvalidException, InactiveUserException, PermissionDeniedException
)
from src.database import get_db_session
from src.users.models import User, UserRead, UserRole

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=OAUTH2_TOKEN_URL, auto_error=False)

DbSessionDep = Annotated[AsyncSession, Depends(get_db_session)]


def get_auth_service(session: DbSessionDep) -> AuthService:
    """Fournit une instance du service d'authentification."""
    return AuthService(user_crud=FastCRUD(User), db=session)


async def get_current_user(
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)]
) -> UserRead:
    """
    Vérifie le token JWT et retourne l'utilisateur courant.

    Raises:
        TokenMissingException: Si le token est manquant
        TokenInvalidException: Si le token est invalide
    """
    if token is None:
        logger.warning("Token manquant dans la requête.")
        raise TokenMissingException()

    user = await auth_service.get_user_from_token(token)
    if user is None:
        raise TokenInvalidException()

    logger.debug(f"Utilisateur authentifié: ID {user.id} ({user.role})")
    return user


async def get_current_active_user(
    current_user: Annotated[UserRead, Depends(get_current_user)]
) -> UserRead:
    """Vérifie que l'utilisateur courant est actif."""
    if not current_user.is_active:
        logger.warning(f"Tentative d'accès par un utilisateur inactif: ID {current_user.id}")
        raise InactiveUserException()
    return current_user


async def get_current_writer_user(
    current_user: Annotated[UserRead, Depends(get_current_active_user)]
) -> UserRead:
    """Vérifie que l'utilisateur courant a un rôle autorisé en écriture."""
    if not current_user.can_write:
        logger.warning(f"Écriture refusée pour le rôle {current_user.role}: user ID {current_user.id}")
        raise PermissionDeniedException("Vous n'avez pas la permission de modifier les devis")
    return current_user


async def get_current_deleter_user(
    current_user: Annotated[UserRead, Depends(get_current_active_user)]
) -> UserRead:
    """Vérifie que l'utilisateur courant a un rôle autorisé à supprimer."""
    if not current_user.can_delete:
        logger.warning(f"Suppression refusée pour le rôle {current_user.role}: user ID {current_user.id}")
        raise PermissionDeniedException("Vous n'avez pas la permission de supprimer les devis")
    return current_user


async def get_current_admin_user(
    current_user: Annotated[UserRead, Depends(get_current_active_user)]
) -> UserRead:
    """Vérifie que l'utilisateur courant est un administrateur."""
    if UserRole(current_user.role) != UserRole.ADMIN:
        logger.warning(f"Tentative d'accès à une ressource admin par un utilisateur non-admin: ID {current_user.id}")
        raise PermissionDeniedException()
    return current_user


CurrentUserDep = Annotated[UserRead, Depends(get_current_active_user)]
WriterUserDep = Annotated[UserRead, Depends(get_current_writer_user)]
DeleterUserDep = Annotated[UserRead, Depends(get_current_deleter_user)]
AdminUserDep = Annotated[UserRead, Depends(get_current_admin_user)]

"""
Routes API pour l'authentification.

- /token : login par formulaire OAuth2 (username = email), retourne un JWT
- /me : utilisateur associé au token courant
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm

from src.auth.config import ACCESS_TOKEN_EXPIRE_MINUTES
from src.auth.dependencies import get_auth_service, CurrentUserDep
from src.auth.exceptions import InvalidCredentialsException
from src.auth.models import Token
from src.auth.security import create_access_token
from src.auth.service import AuthService
from src.users.models import UserRead

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/token", response_model=Token)
async def login_for_access_token(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    auth_service: Annotated[AuthService, Depends(get_auth_service)]
):
    """Échange email + mot de passe contre un token d'accès."""
    logger.info("[Router] Tentative de login pour: %s", form_data.username)
    user = await auth_service.authenticate_user(email=form_data.username, password=form_data.password)
    if not user:
        raise InvalidCredentialsException()
    if not user.is_active:
        logger.warning("[Router] Login refusé, compte inactif: %s", user.id)
        raise InvalidCredentialsException()

    return Token(
        access_token=create_access_token(user.id),
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.get("/me", response_model=UserRead)
async def read_users_me(current_user: CurrentUserDep):
    return current_user


auth_router = router

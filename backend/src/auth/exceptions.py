"""
Erreurs HTTP de l'authentification et du contrôle des rôles.

Les 401 portent l'en-tête WWW-Authenticate attendu par les clients OAuth2.
"""
from fastapi import HTTPException, status

BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}

ERROR_CREDENTIALS_INVALID = "Email ou mot de passe incorrect"
ERROR_TOKEN_INVALID = "Token d'authentification invalide ou expiré"
ERROR_TOKEN_MISSING = "Token d'authentification manquant"
ERROR_USER_INACTIVE = "Compte utilisateur inactif"
ERROR_PERMISSION_DENIED = "Votre rôle ne permet pas cette opération"


class UnauthenticatedException(HTTPException):
    """Base des refus 401."""
    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers=BEARER_CHALLENGE,
        )

class InvalidCredentialsException(UnauthenticatedException):
    def __init__(self):
        super().__init__(ERROR_CREDENTIALS_INVALID)

class TokenInvalidException(UnauthenticatedException):
    def __init__(self):
        super().__init__(ERROR_TOKEN_INVALID)

class TokenMissingException(UnauthenticatedException):
    def __init__(self):
        super().__init__(ERROR_TOKEN_MISSING)

class InactiveUserException(HTTPException):
    """Compte désactivé: authentifié mais refusé."""
    def __init__(self):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=ERROR_USER_INACTIVE)

class PermissionDeniedException(HTTPException):
    """Rôle insuffisant pour l'opération demandée (écriture, suppression, admin)."""
    def __init__(self, detail: str = ERROR_PERMISSION_DENIED):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

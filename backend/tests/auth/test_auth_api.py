"""
Tests du module d'authentification: login par formulaire OAuth2, /me et utilitaires JWT/bcrypt.
"""
from datetime import timedelta

import pytest
from httpx import AsyncClient
from fastapi import status

from src.config import settings
from src.auth.security import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)
from src.users.models import UserRead

AUTH_API_PREFIX = f"{settings.API_V1_PREFIX}/auth"


# --- Utilitaires de sécurité ---

def test_password_hash_roundtrip():
    hashed = get_password_hash("s3cret")
    assert hashed != "s3cret"
    assert verify_password("s3cret", hashed) is True
    assert verify_password("autre", hashed) is False


def test_verify_password_with_malformed_hash():
    assert verify_password("s3cret", "pas-un-hash-bcrypt") is False


def test_access_token_carries_user_id():
    assert decode_access_token(create_access_token(42)) == 42


def test_expired_or_tampered_token_is_rejected():
    assert decode_access_token(create_access_token(42, expires_delta=timedelta(seconds=-1))) is None
    assert decode_access_token(create_access_token(42) + "x") is None


# --- Endpoints ---

@pytest.mark.asyncio
async def test_login_returns_bearer_token(test_client: AsyncClient, admin_user: UserRead):
    response = await test_client.post(
        f"{AUTH_API_PREFIX}/token",
        data={"username": admin_user.email, "password": "adminpassword"},
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["expires_in"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    assert decode_access_token(data["access_token"]) == admin_user.id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "username, password",
    [("admin@example.com", "mauvais"), ("inconnu@example.com", "adminpassword")],
)
async def test_login_rejects_bad_credentials(test_client: AsyncClient, admin_user: UserRead, username, password):
    response = await test_client.post(f"{AUTH_API_PREFIX}/token", data={"username": username, "password": password})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_me_returns_current_user(test_client: AsyncClient, sales_user: UserRead, sales_headers: dict[str, str]):
    response = await test_client.get(f"{AUTH_API_PREFIX}/me", headers=sales_headers)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["id"] == sales_user.id
    assert data["email"] == "sales@example.com"
    assert data["role"] == "SALES"
    assert "password_hash" not in data


@pytest.mark.asyncio
async def test_me_rejects_invalid_token(test_client: AsyncClient):
    response = await test_client.get(f"{AUTH_API_PREFIX}/me", headers={"Authorization": "Bearer invalide"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.asyncio
async def test_me_rejects_token_of_deleted_user(test_client: AsyncClient):
    response = await test_client.get(
        f"{AUTH_API_PREFIX}/me", headers={"Authorization": f"Bearer {create_access_token(9999)}"}
    )
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

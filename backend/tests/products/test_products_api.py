"""
Tests d'intégration pour les endpoints du catalogue produits.
"""
from decimal import Decimal

import pytest
from httpx import AsyncClient
from fastapi import status
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.products.models import Product

PRODUCTS_API_PREFIX = f"{settings.API_V1_PREFIX}/products"

pytestmark = pytest.mark.asyncio


async def test_list_active_products_excludes_inactive(
    test_client: AsyncClient,
    db_session: AsyncSession,
    sales_headers: dict[str, str],
    test_product: Product,
):
    db_session.add(Product(name="Bêche (retirée)", sku="BECH-OLD", unit_price=Decimal("20"), is_active=False))
    db_session.add(Product(name="Arrosoir 10L", sku="ARRO-010", unit_price=Decimal("12.50"), tax_rate=Decimal("20")))
    await db_session.commit()

    response = await test_client.get(f"{PRODUCTS_API_PREFIX}/list/active", headers=sales_headers)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["total"] == 2
    # Tri par nom
    assert [p["name"] for p in data["items"]] == ["Arrosoir 10L", "Tondeuse thermique"]
    assert data["items"][0]["unit_price"] == "12.50"
    assert data["items"][0]["tax_rate"] == "20.00"


async def test_get_product_by_id(test_client: AsyncClient, sales_headers: dict[str, str], test_product: Product):
    product_id = test_product.id
    response = await test_client.get(f"{PRODUCTS_API_PREFIX}/{product_id}", headers=sales_headers)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["id"] == product_id
    assert data["sku"] == "TOND-001"
    assert data["is_active"] is True


async def test_get_product_not_found(test_client: AsyncClient, sales_headers: dict[str, str]):
    response = await test_client.get(f"{PRODUCTS_API_PREFIX}/9999", headers=sales_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND


async def test_products_require_authentication(test_client: AsyncClient):
    response = await test_client.get(f"{PRODUCTS_API_PREFIX}/list/active")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

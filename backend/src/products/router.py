import logging

from fastapi import APIRouter, HTTPException, status, Path

from .dependencies import ProductServiceDep
from .models import ProductRead, ActiveProductList
from .exceptions import ProductNotFoundException
from src.auth.dependencies import CurrentUserDep

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/list/active", response_model=ActiveProductList, summary="Catalogue des produits actifs")
async def list_active_products(service: ProductServiceDep, current_user: CurrentUserDep):
    """Produits actifs, utilisés pour préremplir prix unitaire et taux de taxe d'une ligne de devis."""
    logger.info(f"API list_active_products par user {current_user.id}")
    return await service.list_active_products()


@router.get("/{product_id}", response_model=ProductRead, summary="Récupérer un produit par ID")
async def get_product(
    service: ProductServiceDep,
    current_user: CurrentUserDep,
    product_id: int = Path(..., ge=1)
):
    try:
        return await service.get_product(product_id)
    except ProductNotFoundException as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

product_router = router

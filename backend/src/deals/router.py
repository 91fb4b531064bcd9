import logging

from fastapi import APIRouter, HTTPException, status, Path

from .dependencies import DealRepositoryDep
from .models import DealRead
from src.auth.dependencies import CurrentUserDep

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{deal_id}", response_model=DealRead, summary="Récupérer un deal par ID")
async def read_deal(
    deal_repo: DealRepositoryDep,
    current_user: CurrentUserDep,
    deal_id: int = Path(..., ge=1)
):
    """Deal visible par son propriétaire ou par un rôle à visibilité complète."""
    deal = await deal_repo.get_by_id(deal_id)
    if deal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Deal avec ID {deal_id} non trouvé.")
    if not current_user.sees_all_quotes and deal.owner_id != current_user.id:
        logger.warning(f"Accès refusé deal {deal_id} pour user {current_user.id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Accès non autorisé au deal ID {deal_id}.")
    return DealRead.model_validate(deal, from_attributes=True)

deal_router = router

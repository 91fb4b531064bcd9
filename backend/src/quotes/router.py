import logging
from typing import Optional, List

from fastapi import APIRouter, HTTPException, status, Query, Path, Body, Response

# Services applicatifs (via dépendances du module courant)
from .dependencies import (
    QuoteServiceDep,
    LifecycleManagerDep,
    RevisionServiceDep,
    DealConversionServiceDep,
)

# Schémas/DTOs
from .models import (
    QuoteRead,
    QuoteCreate,
    QuoteUpdate,
    QuoteStatusUpdate,
    QuoteEventRead,
    PaginatedQuoteRead,
    DealConversionRead,
    ExpirySweepRead,
)

# Exceptions du module
from .exceptions import (
    QuoteValidationException,
    QuoteNotFoundException,
    QuoteAccessForbiddenException,
    InvalidQuoteStateException,
    IllegalQuoteTransitionException,
    QuoteAlreadyConvertedException,
    ConcurrentQuoteModificationException,
    QuoteRevisionConflictException,
    DuplicateQuoteException,
)

# Dépendances d'authentification
from src.auth.dependencies import CurrentUserDep, WriterUserDep, DeleterUserDep, AdminUserDep
from src.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()

CONFLICT_EXCEPTIONS = (
    InvalidQuoteStateException,
    IllegalQuoteTransitionException,
    QuoteAlreadyConvertedException,
    ConcurrentQuoteModificationException,
    QuoteRevisionConflictException,
    DuplicateQuoteException,
)


def handle_quote_service_errors(e: Exception, operation: str) -> HTTPException:
    """Traduit une exception du domaine Quote en réponse HTTP."""
    if isinstance(e, QuoteValidationException):
        logger.warning(f"Validation {operation}: {e}")
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"field": e.field, "message": e.message},
        )
    if isinstance(e, QuoteNotFoundException):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, QuoteAccessForbiddenException):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, CONFLICT_EXCEPTIONS):
        logger.warning(f"Conflit {operation}: {e}")
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    logger.error(f"Erreur API {operation}: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Erreur interne ({operation}).",
    )


# --- Endpoints pour les Devis ---

@router.get("", response_model=PaginatedQuoteRead)
async def list_quotes(
    quote_service: QuoteServiceDep,
    current_user: CurrentUserDep,
    response: Response,
    search: Optional[str] = Query(None, max_length=100, description="Recherche sur le titre ou le numéro"),
    status_filter: Optional[str] = Query(None, alias="status", description="Statut, ou 'all'"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
):
    """Liste les devis visibles par l'utilisateur."""
    logger.info(f"API list_quotes pour user ID: {current_user.id}, page={page}, limit={limit}")
    try:
        paginated = await quote_service.list_quotes(
            current_user, search=search, status=status_filter, page=page, limit=limit
        )
    except Exception as e:
        raise handle_quote_service_errors(e, "list_quotes")
    offset = (page - 1) * limit
    end_range = offset + len(paginated.items) - 1 if paginated.items else offset
    response.headers["Content-Range"] = f"quotes {offset}-{end_range}/{paginated.total}"
    return paginated


@router.post("", response_model=QuoteRead, status_code=status.HTTP_201_CREATED)
async def create_quote(
    quote_service: QuoteServiceDep,
    current_user: WriterUserDep,
    quote_request: QuoteCreate
):
    """Crée un devis en brouillon pour l'utilisateur authentifié."""
    logger.info(f"API create_quote pour user ID: {current_user.id}")
    try:
        return await quote_service.create_quote(quote_request, current_user)
    except Exception as e:
        raise handle_quote_service_errors(e, "create_quote")


@router.post("/expire-overdue", response_model=ExpirySweepRead)
async def expire_overdue_quotes(
    lifecycle: LifecycleManagerDep,
    current_user: AdminUserDep
):
    """Expire les devis envoyés dont la date d'expiration est passée (admin)."""
    logger.info(f"API expire_overdue par admin {current_user.id}")
    try:
        expired = await lifecycle.expire_overdue()
    except Exception as e:
        raise handle_quote_service_errors(e, "expire_overdue")
    return ExpirySweepRead(expired=expired)


@router.get("/{quote_id}", response_model=QuoteRead)
async def read_quote(
    quote_service: QuoteServiceDep,
    current_user: CurrentUserDep,
    quote_id: int = Path(..., title="ID du devis", ge=1)
):
    """Récupère un devis avec les montants de chaque ligne."""
    logger.info(f"API read_quote: ID={quote_id} par user {current_user.id}")
    try:
        return await quote_service.get_quote(quote_id, current_user)
    except Exception as e:
        raise handle_quote_service_errors(e, "read_quote")


@router.get("/{quote_id}/history", response_model=List[QuoteEventRead])
async def read_quote_history(
    quote_service: QuoteServiceDep,
    current_user: CurrentUserDep,
    quote_id: int = Path(..., ge=1)
):
    """Historique des opérations sur un devis."""
    try:
        return await quote_service.get_history(quote_id, current_user)
    except Exception as e:
        raise handle_quote_service_errors(e, "read_quote_history")


@router.put("/{quote_id}", response_model=QuoteRead)
async def update_quote(
    quote_service: QuoteServiceDep,
    current_user: WriterUserDep,
    quote_id: int = Path(..., title="ID du devis à MAJ", ge=1),
    quote_update: QuoteUpdate = Body(...)
):
    """Met à jour un devis (lignes, frais de port et échéance uniquement en brouillon)."""
    logger.info(f"API update_quote: ID={quote_id} par user {current_user.id}")
    try:
        return await quote_service.update_quote(quote_id, quote_update, current_user)
    except Exception as e:
        raise handle_quote_service_errors(e, "update_quote")


@router.delete("/{quote_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quote(
    quote_service: QuoteServiceDep,
    current_user: DeleterUserDep,
    quote_id: int = Path(..., ge=1)
):
    """Supprime un devis en brouillon."""
    logger.info(f"API delete_quote: ID={quote_id} par user {current_user.id}")
    try:
        await quote_service.delete_quote(quote_id, current_user)
    except Exception as e:
        raise handle_quote_service_errors(e, "delete_quote")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{quote_id}/status", response_model=QuoteRead)
async def update_quote_status(
    lifecycle: LifecycleManagerDep,
    current_user: WriterUserDep,
    quote_id: int = Path(..., title="ID du devis à MAJ", ge=1),
    status_update: QuoteStatusUpdate = Body(...)
):
    """Demande une transition de statut."""
    logger.info(f"API update_quote_status: ID={quote_id} à '{status_update.status.value}' par user {current_user.id}")
    try:
        return await lifecycle.transition(
            quote_id,
            status_update.status,
            current_user,
            expected_version=status_update.expected_version,
        )
    except Exception as e:
        raise handle_quote_service_errors(e, "update_quote_status")


@router.post("/{quote_id}/clone", response_model=QuoteRead, status_code=status.HTTP_201_CREATED)
async def clone_quote(
    revisions: RevisionServiceDep,
    current_user: WriterUserDep,
    quote_id: int = Path(..., ge=1)
):
    """Crée une nouvelle version du devis; l'original passe en 'revised'."""
    logger.info(f"API clone_quote: ID={quote_id} par user {current_user.id}")
    try:
        return await revisions.clone(quote_id, current_user)
    except Exception as e:
        raise handle_quote_service_errors(e, "clone_quote")


@router.post("/{quote_id}/convert-to-deal", response_model=DealConversionRead, status_code=status.HTTP_201_CREATED)
async def convert_quote_to_deal(
    conversion: DealConversionServiceDep,
    current_user: WriterUserDep,
    response: Response,
    quote_id: int = Path(..., ge=1)
):
    """Convertit un devis accepté en deal. Rejouer l'appel retourne le même deal (200)."""
    logger.info(f"API convert_to_deal: ID={quote_id} par user {current_user.id}")
    try:
        result = await conversion.convert_to_deal(quote_id, current_user)
    except Exception as e:
        raise handle_quote_service_errors(e, "convert_to_deal")
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return DealConversionRead(quote_id=quote_id, deal_id=result.deal_id, created=result.created)


quote_router = router

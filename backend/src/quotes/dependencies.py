import logging
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

# Database session
from src.database import get_db_session

# Services
from src.quotes.service import QuoteService
from src.quotes.lifecycle import LifecycleManager
from src.quotes.revisions import RevisionService
from src.quotes.conversion import DealConversionService

# Repository Interface and Implementation
from src.quotes.interfaces.repositories import AbstractQuoteRepository
from src.quotes.repositories import SQLAlchemyQuoteRepository

# Dépendances des autres modules
from src.products.dependencies import ProductRepositoryDep
from src.deals.dependencies import DealRepositoryDep

logger = logging.getLogger(__name__)

# --- Dépendances Repository ---

def get_quote_repository(
    session: Annotated[AsyncSession, Depends(get_db_session)]
) -> AbstractQuoteRepository:
    """
    Fournit une instance du repository de devis (implémentation SQLAlchemy).

    Args:
        session: Session de base de données asynchrone.

    Returns:
        AbstractQuoteRepository: Instance du repository de devis.
    """
    logger.debug("Fourniture de SQLAlchemyQuoteRepository")
    return SQLAlchemyQuoteRepository(db_session=session)

QuoteRepositoryDep = Annotated[AbstractQuoteRepository, Depends(get_quote_repository)]


# --- Dépendances Service ---

def get_quote_service(
    quote_repo: QuoteRepositoryDep,
    product_repo: ProductRepositoryDep
) -> QuoteService:
    """
    Fournit une instance du service de gestion des devis.

    Args:
        quote_repo: Instance du repository de devis.
        product_repo: Instance du repository produits (vérification des lignes).

    Returns:
        QuoteService: Instance du service de gestion des devis.
    """
    logger.debug("Fourniture de QuoteService avec repositories")
    return QuoteService(quote_repo=quote_repo, product_repo=product_repo)

QuoteServiceDep = Annotated[QuoteService, Depends(get_quote_service)]


def get_lifecycle_manager(quote_repo: QuoteRepositoryDep) -> LifecycleManager:
    """Fournit le gestionnaire des transitions de statut."""
    return LifecycleManager(quote_repo=quote_repo)

LifecycleManagerDep = Annotated[LifecycleManager, Depends(get_lifecycle_manager)]


def get_revision_service(quote_repo: QuoteRepositoryDep) -> RevisionService:
    """Fournit le service de révision des devis."""
    return RevisionService(quote_repo=quote_repo)

RevisionServiceDep = Annotated[RevisionService, Depends(get_revision_service)]


def get_conversion_service(
    quote_repo: QuoteRepositoryDep,
    deal_repo: DealRepositoryDep
) -> DealConversionService:
    """
    Fournit le service de conversion devis -> deal.

    Les deux repositories partagent la session de la requête: l'insertion du
    deal et son association au devis sont commitées ensemble.
    """
    return DealConversionService(quote_repo=quote_repo, deal_repo=deal_repo)

DealConversionServiceDep = Annotated[DealConversionService, Depends(get_conversion_service)]

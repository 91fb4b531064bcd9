"""
Passage d'expiration des devis, à lancer par un planificateur externe (cron, job k8s...).

Usage (depuis backend/):
    python -m scripts.expire_quotes
"""
import asyncio
import logging

from src.config import settings
from src.database import AsyncSessionLocal, engine, import_table_models
from src.quotes.lifecycle import LifecycleManager
from src.quotes.repositories import SQLAlchemyQuoteRepository

logger = logging.getLogger("expire_quotes")


async def run_expiry_sweep() -> int:
    """Expire les devis envoyés échus et retourne leur nombre."""
    import_table_models()
    async with AsyncSessionLocal() as session:
        lifecycle = LifecycleManager(quote_repo=SQLAlchemyQuoteRepository(db_session=session))
        expired = await lifecycle.expire_overdue()
    await engine.dispose()
    return expired


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL)
    expired = asyncio.run(run_expiry_sweep())
    logger.info(f"{expired} devis expirés.")


if __name__ == "__main__":
    main()

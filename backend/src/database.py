import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
# Importer SQLModel pour utiliser ses métadonnées
from sqlmodel import SQLModel

from src.config import settings

logger = logging.getLogger(__name__)

_engine_kwargs = {"echo": settings.DB_ECHO_LOG}
if not settings.database_url.startswith("sqlite"):
    _engine_kwargs.update(pool_size=settings.DB_POOL_SIZE, max_overflow=settings.DB_MAX_OVERFLOW)

# Créer le moteur de base de données asynchrone
engine = create_async_engine(settings.database_url, **_engine_kwargs)

# Créer une classe de session asynchrone
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,  # Empêche les objets d'expirer après commit
)

logger.info("Moteur et Session Factory SQLAlchemy Async configurés.")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that provides an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            # Aucun commit ici: les repositories commitent leurs propres transactions.
        except Exception as e:
            logger.error(f"Erreur durant la session DB, rollback: {e}", exc_info=True)
            await session.rollback()
            raise
        finally:
            await session.close()
            logger.debug("Session DB fermée.")


def import_table_models() -> None:
    """Importe les modèles de table pour qu'ils soient enregistrés dans SQLModel.metadata."""
    from src.users import models as _users  # noqa: F401
    from src.products import models as _products  # noqa: F401
    from src.deals import models as _deals  # noqa: F401
    from src.quotes import models as _quotes  # noqa: F401


async def create_tables():
    """Crée toutes les tables définies."""
    import_table_models()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def drop_tables():
    """Supprime toutes les tables définies."""
    import_table_models()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)

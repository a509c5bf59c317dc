"""
Configuration et initialisation de la base de données pour core-care-participants.

Base de données: PostgreSQL (asyncpg) avec SQLAlchemy 2.0 et AsyncSession.
SQLite (aiosqlite) est supporté pour le développement local et les tests.
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class pour tous les modèles SQLAlchemy."""

    pass


def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """Active les clés étrangères SQLite (ON DELETE CASCADE des groupes)."""
    if async_engine.dialect.name != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Engine SQLAlchemy 2.0
engine = create_async_engine(settings.SQLALCHEMY_DATABASE_URI, echo=False)
enable_sqlite_foreign_keys(engine)

# Session factory
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Obtient une session de base de données."""
    async with async_session_maker() as session:
        yield session


async def create_db_and_tables():
    """Crée toutes les tables."""
    # Enregistre les modèles sur Base.metadata avant create_all
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"{len(Base.metadata.tables)} tables vérifiées/créées")

"""Dependances FastAPI pour l'injection de services."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.record_store import RecordStore, SQLAlchemyRecordStore


async def get_record_store(db: AsyncSession = Depends(get_session)) -> RecordStore:
    """
    Record store lie a la session de la requete.

    Surcharge dans les tests via app.dependency_overrides[get_record_store].
    """
    return SQLAlchemyRecordStore(db)

import logging
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.exceptions import InternalServerError

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    status: Literal["ok", "error"] = Field(..., description="The status of the health check")
    version: str | None = None


@router.get("/health", tags=["health"], response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_session)):
    from app import __version__

    try:
        result = await db.execute(select(text("1")))
        result.scalar_one()
    except Exception as e:
        logger.error(f"Error checking health: {e}")
        raise InternalServerError("Database unreachable") from None
    return HealthResponse(status="ok", version=__version__)

"""Health, readiness and spend cache freshness endpoints."""

import logging
from datetime import datetime

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timebudget import __version__
from timebudget.api.dependencies import DbSession
from timebudget.config import get_settings
from timebudget.models import Project
from timebudget.models.base import as_utc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class SpendCacheStatus(BaseModel):
    """How current the cached quarterly spend on active projects is."""

    active_projects: int
    never_recomputed: int
    oldest_recompute: datetime | None = None


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str
    version: str
    fanout_mode: str
    spend_cache: SpendCacheStatus | None = None


async def spend_cache_status(db: AsyncSession) -> SpendCacheStatus:
    row = (
        await db.execute(
            select(
                func.count(),
                func.count(Project.spent_recomputed_at),
                func.min(Project.spent_recomputed_at),
            ).where(Project.active.is_(True))
        )
    ).one()
    total, recomputed, oldest = row
    return SpendCacheStatus(
        active_projects=total,
        never_recomputed=total - recomputed,
        oldest_recompute=as_utc(oldest) if oldest is not None else None,
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(db: DbSession) -> HealthResponse:
    """Database reachability plus the age of the cached project spend.

    A project that failed to recompute during a fan-out keeps its old
    ``spent_recomputed_at``, so an old ``oldest_recompute`` points at
    totals that need a manual recalculate.
    """
    cache = None
    try:
        cache = await spend_cache_status(db)
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)

    return HealthResponse(
        status="healthy" if cache is not None else "degraded",
        timestamp=utcnow(),
        database="healthy" if cache is not None else "unhealthy",
        version=__version__,
        fanout_mode=get_settings().rate_fanout_mode,
        spend_cache=cache,
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check(db: DbSession, response: Response) -> dict[str, str]:
    """Ready once the database answers queries."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Readiness check failed", exc_info=True)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unavailable"}
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}

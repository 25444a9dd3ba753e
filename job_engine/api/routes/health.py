"""
Health check routes.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from job_engine import __version__
from job_engine.db import get_async_session
from job_engine.db.models import utcnow
from job_engine.observability.metrics import get_metrics
from job_engine.types.api import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


async def _database_reachable(session: AsyncSession) -> bool:
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("Database check failed", extra={"error": str(e)})
        return False
    return True


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API and database connection.",
)
async def health_check(
    session: AsyncSession = Depends(get_async_session),
) -> HealthResponse:
    """
    Perform a health check.

    Checks database connectivity and returns service status.

    Args:
        session: Database session.

    Returns:
        HealthResponse with service status.
    """
    healthy = await _database_reachable(session)

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        version=__version__,
        database="healthy" if healthy else "unhealthy",
        timestamp=utcnow(),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(
    session: AsyncSession = Depends(get_async_session),
) -> dict:
    """Readiness probe: the database must answer."""
    return {"ready": await _database_reachable(session)}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    """Liveness probe."""
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics() -> Response:
    """
    Expose Prometheus metrics.

    Returns:
        Prometheus-formatted metrics.
    """
    metrics_collector = get_metrics()
    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )

"""Health check endpoint.

Verifies connectivity to the database and Redis, returns structured status.
Used by container healthchecks and load balancers.
"""

from __future__ import annotations

from fastapi import APIRouter

from escrow_governance.infrastructure.database.engine import ping_database
from escrow_governance.infrastructure.redis_client import get_redis_or_none
from escrow_governance.logging_config import get_logger
from escrow_governance.schemas.common import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check() -> HealthResponse:
    """Check connectivity to the database and Redis."""
    try:
        await ping_database()
        db_status = "healthy"
    except Exception as exc:
        db_status = f"unhealthy: {exc}"
        logger.error("health.db_check_failed", error=str(exc))

    redis = get_redis_or_none()
    if redis is None:
        redis_status = "unavailable"
    else:
        try:
            await redis.ping()
            redis_status = "healthy"
        except Exception as exc:
            redis_status = f"unhealthy: {exc}"
            logger.error("health.redis_check_failed", error=str(exc))

    overall = "ok" if db_status == "healthy" and redis_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        version="0.1.0",
        database=db_status,
        redis=redis_status,
    )

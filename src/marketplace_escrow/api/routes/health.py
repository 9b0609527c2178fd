"""Health check endpoint.

Reports the storage backend, database and Redis connectivity and whether
the background sweeper is running. Used by Docker healthchecks, load
balancers, and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from sqlalchemy import text

from marketplace_escrow.config import get_settings
from marketplace_escrow.logging_config import get_logger
from marketplace_escrow.schemas.common import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(request: Request) -> HealthResponse:
    """Check connectivity to the configured database and Redis."""
    settings = get_settings()
    db_status = "not_configured"
    redis_status = "not_configured"

    # Check the database
    if settings.storage_backend == "database":
        try:
            from marketplace_escrow.infrastructure.database.engine import _get_engine

            async with _get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            db_status = "healthy"
        except Exception as exc:
            db_status = f"unhealthy: {exc}"
            logger.error("health.db_check_failed", error=str(exc))

    # Check Redis
    if settings.redis_enabled:
        from marketplace_escrow.infrastructure.redis_client import get_redis

        redis = get_redis()
        if redis is None:
            redis_status = "unavailable"
        else:
            try:
                await redis.ping()
                redis_status = "healthy"
            except Exception as exc:
                redis_status = f"unhealthy: {exc}"
                logger.error("health.redis_check_failed", error=str(exc))

    services = getattr(request.app.state, "services", None)
    sweeper_status = "running" if services is not None and services.sweeper.running else "stopped"

    degraded = db_status.startswith("unhealthy") or redis_status not in ("healthy", "not_configured")
    return HealthResponse(
        status="degraded" if degraded else "ok",
        version="0.1.0",
        storage=settings.storage_backend,
        database=db_status,
        redis=redis_status,
        sweeper=sweeper_status,
    )

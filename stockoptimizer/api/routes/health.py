"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import text

from stockoptimizer.cache.client import valkey_healthcheck
from stockoptimizer.core.config import settings
from stockoptimizer.core.logging import get_logger
from stockoptimizer.database.connection import get_session
from stockoptimizer.schemas.common import HealthResponse


router = APIRouter(prefix="/health")

logger = get_logger("health")


async def db_healthcheck() -> bool:
    """Check database health."""
    try:
        async with get_session() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database healthcheck failed: {e}")
        return False


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the API and its dependencies.",
)
async def health_check() -> HealthResponse:
    checks = {
        "database": await db_healthcheck(),
        "cache": await valkey_healthcheck(),
    }

    if all(checks.values()):
        status = "healthy"
    elif checks.get("database", False):
        status = "degraded"  # DB ok but cache down
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=settings.app_version, checks=checks)


@router.get("/live", summary="Liveness check")
async def liveness() -> dict:
    return {"status": "alive"}

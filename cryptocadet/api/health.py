"""Health check endpoints."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter
from sqlalchemy import text

from cryptocadet.core.config import settings
from cryptocadet.core.deps import DBSession, RedisClient

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(db: DBSession, r: RedisClient) -> dict[str, Any]:
    """
    Health check endpoint.

    Reports credential configuration plus database and Redis connectivity.
    """
    health_status: dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "app": settings.app_slug,
        "version": settings.version,
        "environment": settings.environment,
        "shopify_api_key": "configured" if settings.shopify_api_key else "missing",
        "checks": {},
    }

    # Check database connection
    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"unhealthy: {str(e)}"

    # Check Redis connection
    try:
        await r.ping()
        health_status["checks"]["redis"] = "healthy"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["redis"] = f"unhealthy: {str(e)}"

    return health_status


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness probe for container orchestration.

    Simple check that the service is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(db: DBSession) -> dict[str, str]:
    """Readiness probe: the database must answer."""
    await db.execute(text("SELECT 1"))

    return {"status": "ready"}

"""Health check endpoints."""

from typing import Any

import redis.asyncio as redis
from fastapi import APIRouter
from sqlalchemy import text

from multistore.core.config import settings
from multistore.core.deps import DBSession

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(db: DBSession) -> dict[str, Any]:
    """
    Health check endpoint.

    Checks the database and the Celery broker. Checkout routing only needs
    the database; the broker is needed to queue background syncs.
    """
    health_status: dict[str, Any] = {
        "status": "healthy",
        "version": settings.version,
        "environment": settings.environment,
        "checks": {},
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"unhealthy: {e}"

    try:
        redis_client = redis.from_url(str(settings.redis_url))  # type: ignore[no-untyped-call]
        await redis_client.ping()
        await redis_client.aclose()
        health_status["checks"]["broker"] = "healthy"
    except Exception as e:
        was_healthy = health_status["status"] == "healthy"
        health_status["status"] = "degraded" if was_healthy else "unhealthy"
        health_status["checks"]["broker"] = f"unhealthy: {e}"

    return health_status


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Liveness probe: the process is up."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(db: DBSession) -> dict[str, str]:
    """Readiness probe: the database answers."""
    await db.execute(text("SELECT 1"))
    return {"status": "ready"}

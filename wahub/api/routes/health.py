"""Health check endpoints."""

import redis.asyncio as redis
import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from wahub.config import settings
from wahub.database import check_db_connection

logger = structlog.get_logger()
router = APIRouter()


async def check_redis_connection() -> bool:
    """Ping the rate limiter's Redis."""
    client = redis.from_url(settings.redis_url)
    try:
        return bool(await client.ping())
    except Exception as e:
        logger.warning("redis_unreachable", error=str(e))
        return False
    finally:
        await client.aclose()


@router.get("/health")
async def health():
    """Basic health check."""
    return {"status": "healthy"}


@router.get("/health/ready")
async def readiness():
    """
    Readiness check for load balancers.

    Redis only gates readiness when rate limiting uses it; the limiter
    itself fails open.
    """
    checks = {"database": await check_db_connection()}
    if settings.rate_limit_enabled and not settings.is_testing:
        checks["redis"] = await check_redis_connection()

    ready = all(checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "not_ready", "checks": checks},
    )


@router.get("/health/live")
async def liveness():
    """Liveness check for container orchestration."""
    return {"status": "alive"}

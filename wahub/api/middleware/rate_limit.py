"""Rate limiting middleware."""

import time

import redis.asyncio as redis
import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from wahub.config import settings

logger = structlog.get_logger()

# Never throttled: health checks and gateway deliveries
EXEMPT_PREFIXES = ("/health", "/api/v1/webhooks/")

WINDOW_SECONDS = 60


def route_limits() -> list[tuple[str, int]]:
    """(path prefix, requests per window), most specific first."""
    return [
        ("/api/v1/whatsapp/send-message", settings.rate_limit_send_per_minute),
        ("/api/v1/team/invitations", settings.rate_limit_invitations_per_minute),
        ("/api/v1/", settings.rate_limit_per_minute),
    ]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window rate limiting using Redis, per caller and route group."""

    def __init__(self, app, redis_url: str = None):
        super().__init__(app)
        self.redis_url = redis_url or settings.redis_url
        self._redis: redis.Redis | None = None

    async def get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path.startswith(EXEMPT_PREFIXES):
            return await call_next(request)

        group, limit = self._match(path)
        if group is None:
            return await call_next(request)

        identifier = self._get_identifier(request)
        try:
            count, reset_at = await self._hit(f"ratelimit:{identifier}:{group}")
        except Exception as e:
            # Fail open: a Redis outage must not take the API down
            logger.warning("rate_limit_check_failed", error=str(e))
            return await call_next(request)

        headers = {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(max(0, limit - count)),
            "X-RateLimit-Reset": str(reset_at),
        }

        if count > limit:
            logger.info("rate_limit_exceeded", identifier=identifier, group=group)
            headers["Retry-After"] = str(max(0, reset_at - int(time.time())))
            return JSONResponse(
                status_code=429,
                content={"success": False, "error": "Rate limit exceeded", "code": "rate_limited"},
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response

    @staticmethod
    def _match(path: str) -> tuple[str | None, int]:
        for prefix, limit in route_limits():
            if path.startswith(prefix):
                return prefix, limit
        return None, 0

    @staticmethod
    def _get_identifier(request: Request) -> str:
        """Bearer token suffix when present, client IP otherwise."""
        auth = request.headers.get("Authorization", "")
        if auth.startswith("Bearer "):
            return f"token:{auth[-16:]}"

        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return f"ip:{forwarded.split(',')[0].strip()}"

        return f"ip:{request.client.host if request.client else 'unknown'}"

    async def _hit(self, key_prefix: str) -> tuple[int, int]:
        """
        Count one request in the current window.

        Returns: (requests in window including this one, window reset timestamp)
        """
        r = await self.get_redis()
        now = int(time.time())
        window_start = now - (now % WINDOW_SECONDS)
        key = f"{key_prefix}:{window_start}"

        count = await r.incr(key)
        if count == 1:
            await r.expire(key, WINDOW_SECONDS + 1)

        return count, window_start + WINDOW_SECONDS

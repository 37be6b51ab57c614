"""Per-client fixed window rate limiting backed by Redis counters."""

import time
from typing import Any

import structlog
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from mlo.middleware.error_handler import error_response
from mlo.redis_client import get_redis

logger = structlog.get_logger()

_EXEMPT_PATHS = frozenset({"/health", "/ready", "/version"})


def client_address(request: Request, trust_forwarded_for: bool = False) -> str:
    """Caller address; the first ``X-Forwarded-For`` hop when running behind a trusted proxy."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",", 1)[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Allow ``limit`` requests per client per ``window_seconds``; without a reachable Redis, allow all."""

    def __init__(
        self,
        app: Any,  # noqa: ANN401
        limit: int = 100,
        window_seconds: int = 60,
        trust_forwarded_for: bool = False,
    ) -> None:
        super().__init__(app)
        self.limit = limit
        self.window_seconds = window_seconds
        self.trust_forwarded_for = trust_forwarded_for

    async def _count(self, key: str) -> int:
        pipe = get_redis().pipeline()
        pipe.incr(key)
        pipe.expire(key, self.window_seconds + 1)
        count, _ = await pipe.execute()
        return int(count)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        client = client_address(request, self.trust_forwarded_for)
        bucket = int(time.time()) // self.window_seconds
        try:
            count = await self._count(f"mlo:ratelimit:{client}:{bucket}")
        except RuntimeError:
            return await call_next(request)
        except RedisError as exc:
            logger.warning("rate_limit_unavailable", error=str(exc))
            return await call_next(request)

        headers = {"X-RateLimit-Limit": str(self.limit), "X-RateLimit-Remaining": str(max(0, self.limit - count))}
        if count > self.limit:
            logger.info("rate_limited", client=client, path=request.url.path)
            return error_response(
                429,
                "Rate limit exceeded. Try again later.",
                "rate_limited",
                {**headers, "Retry-After": str(self.window_seconds)},
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response

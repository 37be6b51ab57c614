"""Shared Redis client used by the rate limiter and readiness probe.

Redis is optional: with ``MLO_REDIS_URL`` empty the client is never created
and callers of ``get_redis`` get ``RuntimeError``.
"""

import redis.asyncio as redis

from mlo.config import Settings

_client: redis.Redis | None = None


async def init_redis(settings: Settings) -> None:
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        settings.redis_url,
        decode_responses=True,
        max_connections=settings.redis_max_connections,
    )


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
    _client = None


def get_redis() -> redis.Redis:
    if _client is None:
        msg = "Redis is not configured for this process"
        raise RuntimeError(msg)
    return _client


async def redis_status() -> str:
    """``ok`` or a short error string for the readiness probe."""
    try:
        await get_redis().ping()
    except (RuntimeError, redis.RedisError) as exc:
        return f"error: {exc}"
    return "ok"

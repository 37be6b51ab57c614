"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends

from mlo.config import get_settings
from mlo.dependencies import get_store
from mlo.progress.store import ProgressStore
from mlo.redis_client import redis_status

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    store: ProgressStore = Depends(get_store),
) -> dict[str, object]:
    """Readiness probe: checks the progress store and, when configured, Redis."""
    checks: dict[str, object] = {}

    try:
        await store.ping()
        checks["store"] = "ok"
    except Exception as exc:
        checks["store"] = f"error: {exc}"

    if get_settings().redis_url:
        checks["redis"] = await redis_status()

    all_ok = all(v == "ok" for v in checks.values())
    return {"status": "ready" if all_ok else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version and environment."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }

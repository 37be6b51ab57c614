"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from mlo.catalog.seed import sync_catalog
from mlo.config import Settings, get_settings
from mlo.database import close_db, init_db
from mlo.health.router import router as health_router
from mlo.identity.router import router as identity_router
from mlo.leaderboard.router import router as leaderboard_router
from mlo.middleware import setup_middleware
from mlo.progress.memory_store import MemoryProgressStore
from mlo.progress.router import router as progress_router
from mlo.progress.sql_store import SqlProgressStore
from mlo.progress.store import ProgressStore
from mlo.redis_client import close_redis, init_redis
from mlo.users.router import router as users_router

logger = logging.getLogger(__name__)


async def _open_store(settings: Settings) -> ProgressStore:
    if settings.store_backend == "memory":
        return MemoryProgressStore()
    return SqlProgressStore(await init_db(settings))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    owns_store = getattr(app.state, "store", None) is None
    if owns_store:
        app.state.store = await _open_store(settings)
    if settings.redis_url:
        await init_redis(settings)

    # Seed the problem catalog (idempotent)
    if settings.seed_catalog:
        try:
            await sync_catalog(app.state.store)
        except SQLAlchemyError:
            logger.warning("Catalog seeding failed (tables may not exist yet)", exc_info=True)

    yield

    if owns_store:
        await close_db()
        app.state.store = None
    await close_redis()


def create_app(store: ProgressStore | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``store`` overrides the configured backend (tests pass an in-memory store).
    """
    settings = get_settings()

    app = FastAPI(
        title="ML Outliers Progress API",
        description="Progress tracking and leaderboard ranking for ML Outliers exercises",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.store = store

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(progress_router)
    app.include_router(leaderboard_router)
    app.include_router(users_router)
    app.include_router(identity_router)

    return app


app = create_app()

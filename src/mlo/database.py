"""Engine lifecycle for the PostgreSQL progress store."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from mlo.config import Settings

_engine: AsyncEngine | None = None


async def init_db(settings: Settings) -> async_sessionmaker[AsyncSession]:
    """Create the engine and return the session factory the SQL store writes through.

    Sessions keep loaded rows usable after commit; the store converts them to
    records once the transaction ends.
    """
    global _engine  # noqa: PLW0603
    _engine = create_async_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        echo=settings.debug and settings.log_level.upper() == "DEBUG",
    )
    return async_sessionmaker(_engine, expire_on_commit=False)


async def close_db() -> None:
    """Dispose of the engine, if one was created."""
    global _engine  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
    _engine = None

"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone

# Configure before any mlo module reads settings.
os.environ["MLO_STORE_BACKEND"] = "memory"
os.environ["MLO_REDIS_URL"] = ""
os.environ["MLO_LOG_FORMAT"] = "console"
os.environ["MLO_IDENTITY_JWT_ALGORITHM"] = "HS256"
os.environ["MLO_IDENTITY_JWT_SECRET"] = "test-identity-secret-0123456789abcdef0123456789"
os.environ["MLO_IDENTITY_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["MLO_COMPLETION_RETRY_BACKOFF_SECONDS"] = "0"

import jwt
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from mlo.catalog.seed import sync_catalog
from mlo.config import get_settings
from mlo.identity.tokens import reset_keys
from mlo.main import create_app
from mlo.progress.memory_store import MemoryProgressStore

WEBHOOK_SECRET = "test-webhook-secret"


@pytest.fixture(autouse=True)
def _fresh_settings() -> None:
    """Each test sees settings rebuilt from the environment."""
    get_settings.cache_clear()
    reset_keys()


@pytest_asyncio.fixture
async def store() -> MemoryProgressStore:
    """In-memory store seeded with the default catalog."""
    memory = MemoryProgressStore()
    await sync_catalog(memory)
    return memory


@pytest.fixture
def app(store: MemoryProgressStore) -> FastAPI:
    return create_app(store=store)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the app over ASGI."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Build identity tokens the way the external provider would."""

    def _make(subject: str, expires_in: timedelta = timedelta(hours=1)) -> str:
        now = datetime.now(timezone.utc)
        payload = {"sub": subject, "iat": now, "exp": now + expires_in}
        return jwt.encode(payload, get_settings().identity_jwt_secret, algorithm="HS256")

    return _make


@pytest.fixture
def auth_headers(make_token: Callable[..., str]) -> Callable[[str], dict[str, str]]:
    def _headers(subject: str = "user_alice") -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(subject)}"}

    return _headers

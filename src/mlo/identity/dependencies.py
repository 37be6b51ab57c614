"""FastAPI identity dependencies."""

from __future__ import annotations

import structlog
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from mlo.dependencies import get_store
from mlo.errors import IdentityUnavailable, Unauthenticated
from mlo.identity.resolver import IdentityResolver
from mlo.identity.tokens import verify_token
from mlo.progress.store import ProgressStore, UserRecord

logger = structlog.get_logger()

_bearer = HTTPBearer(auto_error=False)


async def get_external_identity_optional(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> str | None:
    """External identity id from the bearer token, or None when absent or invalid."""
    if credentials is None:
        return None
    try:
        payload = verify_token(credentials.credentials)
    except IdentityUnavailable as e:
        logger.info("identity_unavailable", reason=e.message)
        return None
    return payload["sub"]


async def get_current_user_optional(
    external_id: str | None = Depends(get_external_identity_optional),
    store: ProgressStore = Depends(get_store),
) -> UserRecord | None:
    """
    Resolve the caller to an internal user, or None for anonymous callers.

    Used by read endpoints, which degrade to anonymous views.
    """
    if external_id is None:
        return None
    return await IdentityResolver(store).resolve(external_id)


async def get_current_user(
    user: UserRecord | None = Depends(get_current_user_optional),
) -> UserRecord:
    """Resolve the caller to an internal user. Raises 401 for anonymous callers."""
    if user is None:
        raise Unauthenticated
    return user

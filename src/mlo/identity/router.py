"""Identity lifecycle webhook: /api/v1/webhooks/identity.

The auth provider's signature check happens upstream; this endpoint only
accepts a shared-secret header as the verified signal.
"""

from __future__ import annotations

import hmac
from typing import Literal

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException

from mlo.config import get_settings
from mlo.dependencies import get_store
from mlo.errors import DisplayNameTaken, ProgressValidationError, Unauthenticated
from mlo.identity.resolver import IdentityResolver
from mlo.progress.store import ProgressStore
from mlo.schemas import CamelModel
from mlo.users.service import validate_display_name

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/webhooks", tags=["Webhooks"])


class IdentityEventData(CamelModel):
    id: str
    username: str | None = None


class IdentityEvent(CamelModel):
    type: Literal["user.created", "user.updated", "user.deleted"]
    data: IdentityEventData


class WebhookResponse(CamelModel):
    status: str
    user_id: int | None = None


def verify_webhook_secret(x_webhook_secret: str | None = Header(None)) -> None:
    """Reject requests whose shared-secret header does not match configuration."""
    expected = get_settings().identity_webhook_secret
    if not expected:
        raise HTTPException(status_code=503, detail="Webhook secret not configured")
    if x_webhook_secret is None or not hmac.compare_digest(x_webhook_secret, expected):
        msg = "Invalid webhook secret"
        raise Unauthenticated(msg)


async def _sync_display_name(store: ProgressStore, user_id: int, username: str | None) -> None:
    """Adopt the provider's username when it is valid and free; keep the current one otherwise."""
    if not username:
        return
    try:
        name = validate_display_name(username)
        user = await store.get_user(user_id)
        if user is not None and user.display_name != name:
            await store.set_display_name(user_id, name)
    except ProgressValidationError as e:
        logger.info("identity_username_rejected", user_id=user_id, reason=e.message)
    except DisplayNameTaken:
        logger.info("identity_username_taken", user_id=user_id, username=username)


@router.post("/identity", response_model=WebhookResponse, dependencies=[Depends(verify_webhook_secret)])
async def identity_event(
    event: IdentityEvent,
    store: ProgressStore = Depends(get_store),
) -> WebhookResponse:
    """Apply a user.created / user.updated / user.deleted event."""
    external_id = event.data.id
    logger.info("identity_event", event_type=event.type, external_id=external_id)

    if event.type == "user.deleted":
        deleted = await store.delete_user_by_external_id(external_id)
        return WebhookResponse(status="deleted" if deleted else "ignored")

    user = await IdentityResolver(store).resolve(external_id)
    await _sync_display_name(store, user.id, event.data.username)
    return WebhookResponse(status="synced", user_id=user.id)

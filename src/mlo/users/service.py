"""User profile and display-name business logic."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

import structlog

from mlo.config import get_settings
from mlo.errors import DisplayNameCooldown, DisplayNameTaken, ProgressValidationError, UserNotFound
from mlo.progress.store import ProgressStore, UserRecord

logger = structlog.get_logger()

DISPLAY_NAME_MIN_LENGTH = 3
DISPLAY_NAME_MAX_LENGTH = 20
_DISPLAY_NAME_PATTERN = re.compile(r"[A-Za-z0-9_]+")

RESERVED_DISPLAY_NAMES = frozenset({
    "admin",
    "administrator",
    "root",
    "system",
    "support",
    "help",
    "moderator",
    "mod",
    "staff",
    "official",
    "mloutliers",
    "ml_outliers",
    "api",
    "null",
    "undefined",
})


def validate_display_name(display_name: object) -> str:
    """
    Trim and validate a display name.

    Raises:
        ProgressValidationError: If the name is missing, malformed or reserved.
    """
    if not isinstance(display_name, str) or not display_name.strip():
        msg = "Display name is required"
        raise ProgressValidationError(msg)
    name = display_name.strip()
    if len(name) < DISPLAY_NAME_MIN_LENGTH:
        msg = f"Display name must be at least {DISPLAY_NAME_MIN_LENGTH} characters"
        raise ProgressValidationError(msg)
    if len(name) > DISPLAY_NAME_MAX_LENGTH:
        msg = f"Display name must be {DISPLAY_NAME_MAX_LENGTH} characters or less"
        raise ProgressValidationError(msg)
    if not _DISPLAY_NAME_PATTERN.fullmatch(name):
        msg = "Display name can only contain letters, numbers, and underscores"
        raise ProgressValidationError(msg)
    if name.lower() in RESERVED_DISPLAY_NAMES:
        msg = "This display name is reserved"
        raise DisplayNameTaken(msg)
    return name


async def change_display_name(
    store: ProgressStore,
    user_id: int,
    display_name: object,
    now: datetime | None = None,
) -> UserRecord:
    """
    Change a user's display name.

    Raises:
        ProgressValidationError: Invalid name, or same as the current one.
        DisplayNameTaken: Reserved, or held by another user (case-insensitive).
        DisplayNameCooldown: Changed within the cooldown window.
        UserNotFound: Unknown user.
    """
    name = validate_display_name(display_name)
    user = await store.get_user(user_id)
    if user is None:
        raise UserNotFound
    if user.display_name == name:
        msg = "This is already your current display name"
        raise ProgressValidationError(msg)

    if now is None:
        now = datetime.now(timezone.utc)
    cooldown = timedelta(days=get_settings().display_name_cooldown_days)
    if user.username_updated_at is not None and now - user.username_updated_at < cooldown:
        next_allowed = user.username_updated_at + cooldown
        msg = f"Display name can be changed again after {next_allowed.isoformat()}"
        raise DisplayNameCooldown(msg)

    user = await store.set_display_name(user_id, name, now)
    logger.info("display_name_changed", user_id=user_id, display_name=name)
    return user

"""External identity → internal user resolution."""

from __future__ import annotations

import structlog

from mlo.progress.store import ProgressStore, UserRecord

logger = structlog.get_logger()


class IdentityResolver:
    """Maps an external identity id to an internal user, creating it on first sight."""

    def __init__(self, store: ProgressStore) -> None:
        self.store = store

    async def resolve(self, external_id: str) -> UserRecord:
        user, created = await self.store.get_or_create_user(external_id)
        if created:
            logger.info("user_created", user_id=user.id, external_id=external_id)
        return user

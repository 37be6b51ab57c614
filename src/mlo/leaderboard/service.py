"""Leaderboard aggregation.

Reads go straight to the progress store on every request; there is no cache.
The three windows are independent snapshot reads, so a user's all-time and
weekly figures may reflect slightly different moments under concurrent writes.
"""

from __future__ import annotations

from datetime import datetime

import structlog

from mlo.config import get_settings
from mlo.leaderboard.ranking import RankedEntry, assign_ranks
from mlo.leaderboard.windows import Window, window_start
from mlo.progress.store import ProgressStore

logger = structlog.get_logger()


class LeaderboardService:
    """Ranked standings over all-time, monthly and weekly windows."""

    def __init__(self, store: ProgressStore) -> None:
        self.store = store
        self.settings = get_settings()

    async def get_leaderboard(
        self,
        window: Window,
        limit: int | None = None,
        now: datetime | None = None,
    ) -> list[RankedEntry]:
        """Top ``limit`` users for ``window`` with sequential 1-indexed ranks."""
        if limit is None:
            limit = self.settings.leaderboard_default_limit
        limit = max(1, min(limit, self.settings.leaderboard_max_limit))
        since = window_start(window, now, self.settings.week_start)
        rows = await self.store.leaderboard(since, limit)
        return assign_ranks(rows)

    async def get_user_rank(self, user_id: int) -> RankedEntry | None:
        """The user's all-time entry, or None when unranked.

        Re-derives the all-time ordering up to ``rank_scan_cap`` rows; users
        without progress rows, or beyond the cap, are unranked.
        """
        rows = await self.store.leaderboard(None, self.settings.rank_scan_cap)
        for entry in assign_ranks(rows):
            if entry.user_id == user_id:
                return entry
        logger.debug("user_unranked", user_id=user_id, scanned=len(rows))
        return None

"""Leaderboard time windows and their boundaries (UTC)."""

from __future__ import annotations

import enum
from datetime import date, datetime, time, timedelta, timezone


class Window(str, enum.Enum):
    ALL = "all"
    MONTHLY = "monthly"
    WEEKLY = "weekly"

    @classmethod
    def parse(cls, value: str) -> Window:
        """Accept the canonical names plus the ``all-time``/``alltime`` aliases."""
        normalized = value.strip().lower()
        if normalized in {"all-time", "alltime", "all_time"}:
            return cls.ALL
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown leaderboard window: {value}") from None


def get_week_start(dt: datetime | date, week_start: str = "sunday") -> date:
    """Get the first day of the calendar week containing dt.

    ``week_start`` is "monday" (ISO) or "sunday".
    """
    d = dt.date() if isinstance(dt, datetime) else dt
    if week_start == "monday":
        return d - timedelta(days=d.weekday())
    if week_start == "sunday":
        return d - timedelta(days=(d.weekday() + 1) % 7)
    raise ValueError(f"Unknown week start: {week_start}")


def get_month_start(dt: datetime | date) -> date:
    """Get the first day of the calendar month containing dt."""
    d = dt.date() if isinstance(dt, datetime) else dt
    return d.replace(day=1)


def window_start(
    window: Window,
    now: datetime | None = None,
    week_start: str = "sunday",
) -> datetime | None:
    """Inclusive lower bound on ``completed_at`` for a window, None for all-time."""
    if window is Window.ALL:
        return None
    if now is None:
        now = datetime.now(timezone.utc)
    now = now.astimezone(timezone.utc) if now.tzinfo else now.replace(tzinfo=timezone.utc)
    if window is Window.MONTHLY:
        day = get_month_start(now)
    else:
        day = get_week_start(now, week_start)
    return datetime.combine(day, time.min, tzinfo=timezone.utc)

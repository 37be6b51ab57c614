"""Daily activity streaks, advanced whenever a user's last activity is refreshed."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def activity_day(dt: datetime) -> datetime:
    """Truncate to the UTC calendar day."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=timezone.utc)


def advance_streak(
    current: int,
    longest: int,
    last_activity_at: datetime | None,
    now: datetime,
) -> tuple[int, int]:
    """Return (current_streak, longest_streak) after activity at ``now``.

    Same UTC day keeps the streak, the next day extends it, any gap restarts at 1.
    """
    if last_activity_at is None or current <= 0:
        current = 1
    else:
        gap = activity_day(now) - activity_day(last_activity_at)
        if gap <= timedelta(0):
            pass
        elif gap == timedelta(days=1):
            current += 1
        else:
            current = 1
    return current, max(longest, current)

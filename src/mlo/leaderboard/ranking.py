"""Deterministic leaderboard ordering.

Users ranked by completed problems DESC, then by average fastest time ASC
(users without timed completions after those with), then by user id ASC as
the final tiebreaker. Ranks are sequential: equal aggregates still get
distinct ranks in result order.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

from mlo.progress.store import LeaderboardRow


@dataclass(frozen=True)
class RankedEntry:
    rank: int
    user_id: int
    display_name: str | None
    completed_count: int
    points: int
    avg_fastest_time: float | None


def sort_key(row: LeaderboardRow) -> tuple[int, int, float, int]:
    """Ordering key shared by every store implementation."""
    has_time = row.avg_fastest_time is not None
    return (
        -row.completed_count,
        0 if has_time else 1,
        row.avg_fastest_time if has_time else math.inf,
        row.user_id,
    )


def order_rows(rows: Iterable[LeaderboardRow]) -> list[LeaderboardRow]:
    return sorted(rows, key=sort_key)


def assign_ranks(rows: Iterable[LeaderboardRow]) -> list[RankedEntry]:
    """Attach 1-indexed ranks to rows already in leaderboard order."""
    return [
        RankedEntry(
            rank=idx + 1,
            user_id=row.user_id,
            display_name=row.display_name,
            completed_count=row.completed_count,
            points=row.points,
            avg_fastest_time=row.avg_fastest_time,
        )
        for idx, row in enumerate(rows)
    ]

"""Response models for leaderboard endpoints."""

from __future__ import annotations

from mlo.leaderboard.ranking import RankedEntry
from mlo.schemas import CamelModel


class LeaderboardEntryResponse(CamelModel):
    rank: int
    user_id: int
    display_name: str | None
    completed_count: int
    points: int
    avg_fastest_time: float | None

    @classmethod
    def from_entry(cls, entry: RankedEntry) -> LeaderboardEntryResponse:
        return cls(
            rank=entry.rank,
            user_id=entry.user_id,
            display_name=entry.display_name,
            completed_count=entry.completed_count,
            points=entry.points,
            avg_fastest_time=entry.avg_fastest_time,
        )


class LeaderboardResponse(CamelModel):
    entries: list[LeaderboardEntryResponse]
    current_user: LeaderboardEntryResponse | None
    window: str
    count: int

"""Request/response schemas for user endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from mlo.schemas import CamelModel


class CompletedProblemResponse(CamelModel):
    slug: str
    title: str
    module: str
    difficulty: str
    completed_at: datetime | None
    fastest_time_seconds: int | None
    points_earned: int | None
    attempts_count: int


class ProfileStatsResponse(CamelModel):
    total_points: int
    exercises_completed: int
    current_streak: int
    longest_streak: int
    rank: int | None


class PublicProfileResponse(CamelModel):
    id: int
    display_name: str | None
    created_at: datetime | None
    last_activity_at: datetime | None
    stats: ProfileStatsResponse
    completed_problems: list[CompletedProblemResponse]


class DisplayNameUpdateRequest(CamelModel):
    display_name: str


class DisplayNameUpdateResponse(CamelModel):
    status: Literal["success"] = "success"
    display_name: str

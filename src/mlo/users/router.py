"""User router: /api/v1/users/* endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from mlo.dependencies import get_store
from mlo.identity.dependencies import get_current_user
from mlo.leaderboard.service import LeaderboardService
from mlo.progress.service import ProgressService
from mlo.progress.store import ProgressStore, UserRecord
from mlo.users.schemas import (
    CompletedProblemResponse,
    DisplayNameUpdateRequest,
    DisplayNameUpdateResponse,
    ProfileStatsResponse,
    PublicProfileResponse,
)
from mlo.users.service import change_display_name

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/{user_id}/profile", response_model=PublicProfileResponse)
async def get_public_profile(
    user_id: int,
    store: ProgressStore = Depends(get_store),
) -> PublicProfileResponse:
    """Public profile: stats and completed problems, most recent first."""
    profile = await ProgressService(store).get_profile(user_id)
    ranked = await LeaderboardService(store).get_user_rank(user_id)
    user = profile.user
    return PublicProfileResponse(
        id=user.id,
        display_name=user.display_name,
        created_at=user.created_at,
        last_activity_at=user.last_activity_at,
        stats=ProfileStatsResponse(
            total_points=user.total_points,
            exercises_completed=profile.exercises_completed,
            current_streak=user.current_streak,
            longest_streak=user.longest_streak,
            rank=ranked.rank if ranked else None,
        ),
        completed_problems=[
            CompletedProblemResponse(
                slug=c.problem.slug,
                title=c.problem.title,
                module=c.problem.module,
                difficulty=c.problem.difficulty,
                completed_at=c.progress.completed_at,
                fastest_time_seconds=c.progress.fastest_time_seconds,
                points_earned=c.progress.points_earned,
                attempts_count=c.progress.attempts_count,
            )
            for c in profile.completed_problems
        ],
    )


@router.patch("/me/display-name", response_model=DisplayNameUpdateResponse)
async def update_display_name(
    body: DisplayNameUpdateRequest,
    user: UserRecord = Depends(get_current_user),
    store: ProgressStore = Depends(get_store),
) -> DisplayNameUpdateResponse:
    """Change the caller's display name."""
    updated = await change_display_name(store, user.id, body.display_name)
    return DisplayNameUpdateResponse(display_name=updated.display_name or "")

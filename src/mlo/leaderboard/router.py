"""Leaderboard API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from mlo.config import get_settings
from mlo.dependencies import get_store
from mlo.errors import ProgressValidationError
from mlo.identity.dependencies import get_current_user_optional
from mlo.leaderboard.schemas import LeaderboardEntryResponse, LeaderboardResponse
from mlo.leaderboard.service import LeaderboardService
from mlo.leaderboard.windows import Window
from mlo.progress.store import ProgressStore, UserRecord

router = APIRouter(prefix="/api/v1", tags=["Leaderboard"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    window: str | None = Query(None, description="all | monthly | weekly"),
    filter_: str | None = Query(None, alias="filter", description="Alias of window"),
    limit: int | None = Query(None, ge=1),
    user: UserRecord | None = Depends(get_current_user_optional),
    store: ProgressStore = Depends(get_store),
) -> LeaderboardResponse:
    """Ranked standings for a window, plus the caller's all-time entry when signed in."""
    try:
        selected = Window.parse(window or filter_ or Window.ALL.value)
    except ValueError as e:
        raise ProgressValidationError(str(e)) from e
    if limit is not None and limit > get_settings().leaderboard_max_limit:
        msg = f"limit must be at most {get_settings().leaderboard_max_limit}"
        raise ProgressValidationError(msg)

    service = LeaderboardService(store)
    entries = await service.get_leaderboard(selected, limit)
    current = await service.get_user_rank(user.id) if user is not None else None
    return LeaderboardResponse(
        entries=[LeaderboardEntryResponse.from_entry(e) for e in entries],
        current_user=LeaderboardEntryResponse.from_entry(current) if current else None,
        window=selected.value,
        count=len(entries),
    )

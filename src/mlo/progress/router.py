"""Progress router: all /api/v1/progress/* endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from mlo.dependencies import get_store
from mlo.identity.dependencies import get_current_user, get_current_user_optional
from mlo.migration.importer import import_completions
from mlo.progress.schemas import (
    CompleteRequest,
    CompleteResponse,
    CompletionsResponse,
    ImportRequest,
    ImportResponse,
    RoadmapResponse,
    RoadmapUpdateRequest,
    SubmitRequest,
    SubmitResponse,
)
from mlo.progress.roadmap import RoadmapService, empty_roadmap
from mlo.progress.service import ProgressService
from mlo.progress.store import ProgressStore, UserRecord

router = APIRouter(prefix="/api/v1/progress", tags=["Progress"])


@router.post("/submit", response_model=SubmitResponse)
async def submit_answer(
    body: SubmitRequest,
    user: UserRecord = Depends(get_current_user),
    store: ProgressStore = Depends(get_store),
) -> SubmitResponse:
    """Record an answer attempt; a correct answer completes the problem."""
    outcome = await ProgressService(store).record_submission(
        user.id,
        body.problem_slug,
        body.answer_correct,
        elapsed_seconds=body.elapsed_seconds,
        answer_text=body.answer_text,
    )
    return SubmitResponse(status=outcome.status, points_awarded=outcome.points_awarded)


@router.post("/complete", response_model=CompleteResponse)
async def mark_complete(
    body: CompleteRequest,
    user: UserRecord = Depends(get_current_user),
    store: ProgressStore = Depends(get_store),
) -> CompleteResponse:
    """Mark a problem completed without an answer check."""
    result = await ProgressService(store).mark_complete(user.id, body.problem_slug)
    return CompleteResponse(problem_slug=body.problem_slug, points_awarded=result.points_awarded)


@router.post("/import", response_model=ImportResponse)
async def import_progress(
    body: ImportRequest,
    user: UserRecord = Depends(get_current_user),
    store: ProgressStore = Depends(get_store),
) -> ImportResponse:
    """Import completions held outside the service (idempotent)."""
    report = await import_completions(
        store, user.id, [] if body.completed_slugs is None else body.completed_slugs
    )
    return ImportResponse(
        migrated_count=report.migrated_count,
        skipped_count=len(report.skipped_existing) + len(report.skipped_unknown),
    )


@router.get("/completions", response_model=CompletionsResponse)
async def list_completions(
    user: UserRecord | None = Depends(get_current_user_optional),
    store: ProgressStore = Depends(get_store),
) -> CompletionsResponse:
    """Completed problem slugs for the caller; empty for anonymous callers."""
    if user is None:
        return CompletionsResponse(
            status="not_authenticated",
            completed_slugs=[],
            exercises_completed=0,
            total_points=0,
        )
    summary = await ProgressService(store).list_completions(user.id)
    return CompletionsResponse(
        status="success",
        completed_slugs=summary.completed.to_list(),
        exercises_completed=summary.exercises_completed,
        total_points=summary.total_points,
    )


@router.get("/roadmap", response_model=RoadmapResponse)
async def get_roadmap(
    user: UserRecord | None = Depends(get_current_user_optional),
    store: ProgressStore = Depends(get_store),
) -> RoadmapResponse:
    """Roadmap topics ticked off by the caller, with ML/DL counts; empty for anonymous callers."""
    if user is None:
        return RoadmapResponse.from_view(empty_roadmap(), status="not_authenticated")
    return RoadmapResponse.from_view(await RoadmapService(store).get(user.id))


@router.post("/roadmap", response_model=RoadmapResponse)
async def save_roadmap(
    body: RoadmapUpdateRequest,
    user: UserRecord = Depends(get_current_user),
    store: ProgressStore = Depends(get_store),
) -> RoadmapResponse:
    """Replace the caller's roadmap progress."""
    view = await RoadmapService(store).save(
        user.id,
        body.language,
        completed_topics=body.completed_topics,
        completions=body.completions,
    )
    return RoadmapResponse.from_view(view)

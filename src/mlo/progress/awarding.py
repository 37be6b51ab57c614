"""Point awarding policy.

The only code path that increments a user's ``total_points``. Points for a
(user, problem) pair are awarded by the store's atomic ``complete`` operation
exactly once, on the transition into ``completed``; re-solves only refresh
attempts, best time and activity. Transaction conflicts are retried here a
bounded number of times and then surfaced as ``ConflictExhausted``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone
from typing import TypeVar

import structlog

from mlo.config import get_settings
from mlo.errors import ConflictExhausted, StoreConflict
from mlo.progress.store import (
    CompletionResult,
    ProblemRecord,
    ProgressStore,
    SubmissionDraft,
)

logger = structlog.get_logger()

T = TypeVar("T")


async def with_conflict_retry(
    operation: Callable[[datetime], Awaitable[T]],
    *,
    action: str,
    user_id: int,
    max_retries: int | None = None,
) -> T:
    """Run ``operation`` and re-enter it from scratch on ``StoreConflict``.

    Each attempt gets a fresh timestamp. A retried attempt re-reads the progress
    row, so a completion that committed just before the conflict is seen as
    already completed instead of being awarded twice.
    """
    settings = get_settings()
    retries = settings.completion_max_retries if max_retries is None else max_retries
    attempt = 0
    while True:
        try:
            return await operation(datetime.now(timezone.utc))
        except StoreConflict as exc:
            if attempt >= retries:
                logger.error("progress_conflict_exhausted", action=action, user_id=user_id, attempts=attempt + 1)
                raise ConflictExhausted from exc
            attempt += 1
            logger.warning("progress_conflict_retry", action=action, user_id=user_id, attempt=attempt)
            await asyncio.sleep(settings.completion_retry_backoff_seconds * attempt)


async def award_completion(
    store: ProgressStore,
    user_id: int,
    problem: ProblemRecord,
    elapsed_seconds: int | None = None,
    points: int | None = None,
    submission: SubmissionDraft | None = None,
    max_retries: int | None = None,
) -> CompletionResult:
    """Run the completion path for (user, problem).

    ``points`` defaults to the problem's base points and is only credited when
    this call moves the row into ``completed``.
    """
    award = problem.base_points if points is None else points

    async def _complete(now: datetime) -> CompletionResult:
        return await store.complete(
            user_id,
            problem.id,
            elapsed_seconds,
            award,
            now,
            submission=submission,
        )

    result = await with_conflict_retry(_complete, action="complete", user_id=user_id, max_retries=max_retries)
    if result.first_completion:
        logger.info(
            "problem_completed",
            user_id=user_id,
            problem=problem.slug,
            outcome=result.kind.value,
            points=result.points_awarded,
        )
    else:
        logger.info(
            "problem_resolved",
            user_id=user_id,
            problem=problem.slug,
            attempts=result.progress.attempts_count,
            fastest=result.progress.fastest_time_seconds,
        )
    return result


async def award_imported_completions(
    store: ProgressStore,
    user_id: int,
    problems: Sequence[ProblemRecord],
    max_retries: int | None = None,
) -> list[ProblemRecord]:
    """Credit base points for every problem the user has no progress row for.

    Rows and the summed point delta are written in one atomic unit; problems
    that already have a row in any status are skipped.
    """
    if not problems:
        return []

    async def _import(now: datetime) -> list[ProblemRecord]:
        return await store.import_completions(user_id, problems, now)

    inserted = await with_conflict_retry(_import, action="import", user_id=user_id, max_retries=max_retries)
    logger.info(
        "completions_imported",
        user_id=user_id,
        imported=len(inserted),
        skipped=len(problems) - len(inserted),
        points=sum(p.base_points for p in inserted),
    )
    return inserted

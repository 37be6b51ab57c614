"""Progress service: submission recording, completion finalizing, completion listing."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import structlog

from mlo.errors import ProblemNotFound, ProgressValidationError, UserNotFound
from mlo.progress.awarding import award_completion, with_conflict_retry
from mlo.progress.completion_set import CompletionSet
from mlo.progress.store import (
    STATUS_COMPLETED,
    CompletedProblem,
    CompletionResult,
    ProblemRecord,
    ProgressRecord,
    ProgressStore,
    SubmissionDraft,
    UserRecord,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class SubmissionOutcome:
    status: str
    points_awarded: int
    attempts_count: int
    fastest_time_seconds: int | None = None


@dataclass(frozen=True)
class CompletionSummary:
    completed: CompletionSet
    total_points: int

    @property
    def exercises_completed(self) -> int:
        return len(self.completed)


@dataclass(frozen=True)
class UserProfile:
    user: UserRecord
    completed_problems: list[CompletedProblem]

    @property
    def exercises_completed(self) -> int:
        return len(self.completed_problems)


class ProgressService:
    """Records attempts and completions against a ``ProgressStore``."""

    def __init__(self, store: ProgressStore) -> None:
        self.store = store

    async def get_published_problem(self, slug: str) -> ProblemRecord:
        problem = await self.store.get_problem(slug)
        if problem is None or not problem.is_published:
            raise ProblemNotFound(slug)
        return problem

    # --- Writes ---

    async def record_submission(
        self,
        user_id: int,
        problem_slug: str,
        is_correct: bool,
        elapsed_seconds: int | None = None,
        answer_text: str = "",
    ) -> SubmissionOutcome:
        """Log an answer attempt and advance the (user, problem) progress row.

        A correct answer runs the completion path with the problem's base points;
        an incorrect one only counts the attempt.
        """
        if elapsed_seconds is not None and elapsed_seconds < 0:
            raise ProgressValidationError("elapsedSeconds must be non-negative")
        problem = await self.get_published_problem(problem_slug)
        draft = SubmissionDraft(
            answer_text=answer_text,
            is_correct=is_correct,
            elapsed_seconds=elapsed_seconds,
        )

        if is_correct:
            result = await award_completion(
                self.store,
                user_id,
                problem,
                elapsed_seconds=elapsed_seconds,
                submission=draft,
            )
            return SubmissionOutcome(
                status=STATUS_COMPLETED,
                points_awarded=result.points_awarded,
                attempts_count=result.progress.attempts_count,
                fastest_time_seconds=result.progress.fastest_time_seconds,
            )

        async def _attempt(now: datetime) -> ProgressRecord:
            return await self.store.record_attempt(user_id, problem.id, now, submission=draft)

        row = await with_conflict_retry(_attempt, action="attempt", user_id=user_id)
        logger.info(
            "incorrect_submission",
            user_id=user_id,
            problem=problem.slug,
            attempts=row.attempts_count,
        )
        return SubmissionOutcome(
            status=row.status,
            points_awarded=0,
            attempts_count=row.attempts_count,
            fastest_time_seconds=row.fastest_time_seconds,
        )

    async def mark_complete(self, user_id: int, problem_slug: str) -> CompletionResult:
        """Grant completion regardless of answer correctness. No submission row is logged."""
        problem = await self.get_published_problem(problem_slug)
        return await award_completion(self.store, user_id, problem)

    # --- Reads ---

    async def list_completions(self, user_id: int) -> CompletionSummary:
        user = await self.store.get_user(user_id)
        if user is None:
            raise UserNotFound
        completed = await self.store.list_completed(user_id)
        return CompletionSummary(
            completed=CompletionSet(c.problem.slug for c in completed),
            total_points=user.total_points,
        )

    async def get_profile(self, user_id: int) -> UserProfile:
        user = await self.store.get_user(user_id)
        if user is None:
            raise UserNotFound
        return UserProfile(user=user, completed_problems=await self.store.list_completed(user_id))

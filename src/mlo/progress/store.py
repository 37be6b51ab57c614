"""Progress store capability.

The engine never talks to a database client directly. Services receive a
``ProgressStore`` and rely on its operations being atomic per call; the SQL
implementation lives in ``sql_store`` and an in-memory one in ``memory_store``.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from mlo.db.models import STATUS_COMPLETED, STATUS_IN_PROGRESS
from mlo.progress.completion_set import CompletionSet

__all__ = [
    "STATUS_COMPLETED",
    "STATUS_IN_PROGRESS",
    "CatalogEntry",
    "CompletedProblem",
    "CompletionKind",
    "CompletionResult",
    "LeaderboardRow",
    "ProblemRecord",
    "ProgressRecord",
    "ProgressStore",
    "RoadmapRecord",
    "SubmissionDraft",
    "UserRecord",
    "merge_fastest",
]


@dataclass(frozen=True)
class UserRecord:
    id: int
    external_id: str
    display_name: str | None = None
    total_points: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_at: datetime | None = None
    username_updated_at: datetime | None = None
    moderation_attempts: int = 0
    created_at: datetime | None = None


@dataclass(frozen=True)
class ProblemRecord:
    id: int
    slug: str
    title: str
    module: str
    difficulty: str
    base_points: int
    display_order: int
    is_published: bool


@dataclass(frozen=True)
class CatalogEntry:
    """Problem definition as published by the content registry."""

    slug: str
    title: str
    module: str
    difficulty: str = "beginner"
    base_points: int = 100
    display_order: int = 0
    is_published: bool = True


@dataclass(frozen=True)
class ProgressRecord:
    user_id: int
    problem_id: int
    status: str
    attempts_count: int
    first_attempt_at: datetime
    completed_at: datetime | None = None
    fastest_time_seconds: int | None = None
    points_earned: int | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED


@dataclass(frozen=True)
class SubmissionDraft:
    """Submission log row to append in the same atomic unit as a progress update.

    ``points_awarded`` is filled in by the store from the outcome of the update.
    """

    answer_text: str
    is_correct: bool
    elapsed_seconds: int | None = None


class CompletionKind(enum.Enum):
    CREATED = "created"
    UPDATED_FROM_INCOMPLETE = "updated_from_incomplete"
    ALREADY_COMPLETED = "already_completed"


@dataclass(frozen=True)
class CompletionResult:
    """Outcome of the atomic completion operation."""

    kind: CompletionKind
    progress: ProgressRecord
    points_awarded: int

    @property
    def first_completion(self) -> bool:
        return self.kind is not CompletionKind.ALREADY_COMPLETED


@dataclass(frozen=True)
class CompletedProblem:
    problem: ProblemRecord
    progress: ProgressRecord


@dataclass(frozen=True)
class LeaderboardRow:
    """Per-user aggregate over one leaderboard window, before ranking."""

    user_id: int
    display_name: str | None
    completed_count: int
    points: int
    avg_fastest_time: float | None


@dataclass(frozen=True)
class RoadmapRecord:
    """Learning-roadmap topics a user has ticked off, in the roadmap language they follow."""

    user_id: int
    language: str
    topics: CompletionSet
    updated_at: datetime


def merge_fastest(existing: int | None, candidate: int | None) -> int | None:
    """Best time after a re-solve: never increases, ignores missing candidates."""
    if candidate is None:
        return existing
    if existing is None:
        return candidate
    return min(existing, candidate)


class ProgressStore(Protocol):
    """Durable state behind the engine. Each method is one atomic unit."""

    # --- Users ---

    async def get_or_create_user(self, external_id: str) -> tuple[UserRecord, bool]: ...

    async def get_user(self, user_id: int) -> UserRecord | None: ...

    async def get_user_by_external_id(self, external_id: str) -> UserRecord | None: ...

    async def delete_user_by_external_id(self, external_id: str) -> bool: ...

    async def set_display_name(
        self, user_id: int, display_name: str, changed_at: datetime | None = None
    ) -> UserRecord:
        """Rename the user. ``changed_at`` restarts the rename cooldown; ``None`` leaves it as is."""
        ...

    # --- Catalog ---

    async def get_problem(self, slug: str) -> ProblemRecord | None: ...

    async def get_problems(self, slugs: Iterable[str]) -> dict[str, ProblemRecord]: ...

    async def upsert_problems(self, entries: Sequence[CatalogEntry]) -> int: ...

    # --- Progress ---

    async def get_progress(self, user_id: int, problem_id: int) -> ProgressRecord | None: ...

    async def record_attempt(
        self,
        user_id: int,
        problem_id: int,
        now: datetime,
        submission: SubmissionDraft | None = None,
    ) -> ProgressRecord: ...

    async def complete(
        self,
        user_id: int,
        problem_id: int,
        elapsed_seconds: int | None,
        points: int,
        now: datetime,
        submission: SubmissionDraft | None = None,
    ) -> CompletionResult: ...

    async def import_completions(
        self,
        user_id: int,
        problems: Sequence[ProblemRecord],
        now: datetime,
    ) -> list[ProblemRecord]: ...

    async def list_completed(self, user_id: int) -> list[CompletedProblem]: ...

    # --- Roadmap ---

    async def get_roadmap(self, user_id: int) -> RoadmapRecord | None: ...

    async def save_roadmap(
        self, user_id: int, language: str, topics: CompletionSet, now: datetime
    ) -> RoadmapRecord: ...

    # --- Leaderboard ---

    async def leaderboard(self, since: datetime | None, limit: int) -> list[LeaderboardRow]: ...

    async def ping(self) -> None: ...

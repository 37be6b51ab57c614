"""In-memory progress store.

Implements the same contract as the SQL store with every operation serialised
under one ``asyncio.Lock``. Used for local development (``MLO_STORE_BACKEND=memory``)
and by the test suite.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from mlo.errors import DisplayNameTaken, UserNotFound
from mlo.leaderboard.ranking import order_rows
from mlo.progress.completion_set import CompletionSet
from mlo.progress.store import (
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    CatalogEntry,
    CompletedProblem,
    CompletionKind,
    CompletionResult,
    LeaderboardRow,
    ProblemRecord,
    ProgressRecord,
    RoadmapRecord,
    SubmissionDraft,
    UserRecord,
    merge_fastest,
)
from mlo.progress.streaks import advance_streak

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class StoredSubmission:
    id: int
    user_id: int
    problem_id: int
    answer_text: str
    is_correct: bool
    elapsed_seconds: int | None
    points_awarded: int
    created_at: datetime


class MemoryProgressStore:
    """Dict-backed ``ProgressStore``."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._user_ids = itertools.count(1)
        self._problem_ids = itertools.count(1)
        self._submission_ids = itertools.count(1)
        self.users: dict[int, UserRecord] = {}
        self.problems: dict[str, ProblemRecord] = {}
        self.progress: dict[tuple[int, int], ProgressRecord] = {}
        self.submissions: list[StoredSubmission] = []
        self.roadmaps: dict[int, RoadmapRecord] = {}

    # --- Users ---

    async def get_or_create_user(self, external_id: str) -> tuple[UserRecord, bool]:
        async with self._lock:
            existing = self._find_external(external_id)
            if existing is not None:
                return existing, False
            user = UserRecord(
                id=next(self._user_ids),
                external_id=external_id,
                created_at=datetime.now(timezone.utc),
            )
            self.users[user.id] = user
            return user, True

    async def get_user(self, user_id: int) -> UserRecord | None:
        return self.users.get(user_id)

    async def get_user_by_external_id(self, external_id: str) -> UserRecord | None:
        return self._find_external(external_id)

    async def delete_user_by_external_id(self, external_id: str) -> bool:
        async with self._lock:
            user = self._find_external(external_id)
            if user is None:
                return False
            del self.users[user.id]
            for key in [k for k in self.progress if k[0] == user.id]:
                del self.progress[key]
            self.submissions = [s for s in self.submissions if s.user_id != user.id]
            self.roadmaps.pop(user.id, None)
            return True

    async def set_display_name(
        self, user_id: int, display_name: str, changed_at: datetime | None = None
    ) -> UserRecord:
        async with self._lock:
            user = self.users.get(user_id)
            if user is None:
                raise UserNotFound
            normalized = display_name.lower()
            for other in self.users.values():
                if other.id != user_id and other.display_name and other.display_name.lower() == normalized:
                    raise DisplayNameTaken
            user = replace(
                user,
                display_name=display_name,
                username_updated_at=changed_at or user.username_updated_at,
            )
            self.users[user_id] = user
            return user

    # --- Catalog ---

    async def get_problem(self, slug: str) -> ProblemRecord | None:
        return self.problems.get(slug)

    async def get_problems(self, slugs: Iterable[str]) -> dict[str, ProblemRecord]:
        return {slug: self.problems[slug] for slug in slugs if slug in self.problems}

    async def upsert_problems(self, entries: Sequence[CatalogEntry]) -> int:
        async with self._lock:
            for entry in entries:
                current = self.problems.get(entry.slug)
                problem_id = current.id if current else next(self._problem_ids)
                self.problems[entry.slug] = ProblemRecord(
                    id=problem_id,
                    slug=entry.slug,
                    title=entry.title,
                    module=entry.module,
                    difficulty=entry.difficulty,
                    base_points=entry.base_points,
                    display_order=entry.display_order,
                    is_published=entry.is_published,
                )
            return len(entries)

    # --- Progress ---

    async def get_progress(self, user_id: int, problem_id: int) -> ProgressRecord | None:
        return self.progress.get((user_id, problem_id))

    async def record_attempt(
        self,
        user_id: int,
        problem_id: int,
        now: datetime,
        submission: SubmissionDraft | None = None,
    ) -> ProgressRecord:
        async with self._lock:
            self._require_user(user_id)
            key = (user_id, problem_id)
            current = self.progress.get(key)
            if current is None:
                row = ProgressRecord(
                    user_id=user_id,
                    problem_id=problem_id,
                    status=STATUS_IN_PROGRESS,
                    attempts_count=1,
                    first_attempt_at=now,
                )
            elif current.is_completed:
                row = current
            else:
                row = replace(current, attempts_count=current.attempts_count + 1)
            self.progress[key] = row
            self._touch_user(user_id, now, points=0)
            if submission is not None:
                self._append_submission(user_id, problem_id, submission, 0, now)
            return row

    async def complete(
        self,
        user_id: int,
        problem_id: int,
        elapsed_seconds: int | None,
        points: int,
        now: datetime,
        submission: SubmissionDraft | None = None,
    ) -> CompletionResult:
        async with self._lock:
            self._require_user(user_id)
            key = (user_id, problem_id)
            current = self.progress.get(key)
            if current is None:
                kind = CompletionKind.CREATED
                row = ProgressRecord(
                    user_id=user_id,
                    problem_id=problem_id,
                    status=STATUS_COMPLETED,
                    attempts_count=1,
                    first_attempt_at=now,
                    completed_at=now,
                    fastest_time_seconds=elapsed_seconds,
                    points_earned=points,
                )
                awarded = points
            elif not current.is_completed:
                kind = CompletionKind.UPDATED_FROM_INCOMPLETE
                row = replace(
                    current,
                    status=STATUS_COMPLETED,
                    attempts_count=current.attempts_count + 1,
                    completed_at=now,
                    fastest_time_seconds=elapsed_seconds,
                    points_earned=points,
                )
                awarded = points
            else:
                kind = CompletionKind.ALREADY_COMPLETED
                row = replace(
                    current,
                    attempts_count=current.attempts_count + 1,
                    fastest_time_seconds=merge_fastest(current.fastest_time_seconds, elapsed_seconds),
                )
                awarded = 0
            self.progress[key] = row
            self._touch_user(user_id, now, points=awarded)
            if submission is not None:
                self._append_submission(user_id, problem_id, submission, awarded, now)
            return CompletionResult(kind=kind, progress=row, points_awarded=awarded)

    async def import_completions(
        self,
        user_id: int,
        problems: Sequence[ProblemRecord],
        now: datetime,
    ) -> list[ProblemRecord]:
        async with self._lock:
            self._require_user(user_id)
            inserted: list[ProblemRecord] = []
            for problem in problems:
                key = (user_id, problem.id)
                if key in self.progress:
                    continue
                self.progress[key] = ProgressRecord(
                    user_id=user_id,
                    problem_id=problem.id,
                    status=STATUS_COMPLETED,
                    attempts_count=1,
                    first_attempt_at=now,
                    completed_at=now,
                    points_earned=problem.base_points,
                )
                inserted.append(problem)
            delta = sum(p.base_points for p in inserted)
            if delta:
                user = self.users[user_id]
                self.users[user_id] = replace(user, total_points=user.total_points + delta)
            return inserted

    async def list_completed(self, user_id: int) -> list[CompletedProblem]:
        by_id = {p.id: p for p in self.problems.values()}
        rows = [
            CompletedProblem(problem=by_id[row.problem_id], progress=row)
            for (uid, _), row in self.progress.items()
            if uid == user_id and row.is_completed and row.problem_id in by_id
        ]
        rows.sort(key=lambda c: c.progress.completed_at or _EPOCH, reverse=True)
        return rows

    # --- Roadmap ---

    async def get_roadmap(self, user_id: int) -> RoadmapRecord | None:
        return self.roadmaps.get(user_id)

    async def save_roadmap(
        self, user_id: int, language: str, topics: CompletionSet, now: datetime
    ) -> RoadmapRecord:
        async with self._lock:
            self._require_user(user_id)
            record = RoadmapRecord(user_id=user_id, language=language, topics=topics, updated_at=now)
            self.roadmaps[user_id] = record
            return record

    # --- Leaderboard ---

    async def leaderboard(self, since: datetime | None, limit: int) -> list[LeaderboardRow]:
        per_user: dict[int, list[ProgressRecord]] = {}
        for (uid, _), row in self.progress.items():
            if since is None:
                per_user.setdefault(uid, [])
                if row.is_completed:
                    per_user[uid].append(row)
            elif row.is_completed and row.completed_at is not None and row.completed_at >= since:
                per_user.setdefault(uid, []).append(row)

        rows = []
        for uid, completed in per_user.items():
            user = self.users.get(uid)
            if user is None:
                continue
            times = [r.fastest_time_seconds for r in completed if r.fastest_time_seconds is not None]
            rows.append(
                LeaderboardRow(
                    user_id=uid,
                    display_name=user.display_name,
                    completed_count=len({r.problem_id for r in completed}),
                    points=user.total_points if since is None else sum(r.points_earned or 0 for r in completed),
                    avg_fastest_time=sum(times) / len(times) if times else None,
                )
            )
        return order_rows(rows)[:limit]

    async def ping(self) -> None:
        return None

    # --- Helpers ---

    def _find_external(self, external_id: str) -> UserRecord | None:
        for user in self.users.values():
            if user.external_id == external_id:
                return user
        return None

    def _require_user(self, user_id: int) -> None:
        if user_id not in self.users:
            raise UserNotFound

    def _touch_user(self, user_id: int, now: datetime, points: int) -> None:
        user = self.users[user_id]
        current, longest = advance_streak(
            user.current_streak, user.longest_streak, user.last_activity_at, now
        )
        self.users[user_id] = replace(
            user,
            total_points=user.total_points + points,
            current_streak=current,
            longest_streak=longest,
            last_activity_at=now,
        )

    def _append_submission(
        self,
        user_id: int,
        problem_id: int,
        draft: SubmissionDraft,
        points_awarded: int,
        now: datetime,
    ) -> None:
        self.submissions.append(
            StoredSubmission(
                id=next(self._submission_ids),
                user_id=user_id,
                problem_id=problem_id,
                answer_text=draft.answer_text,
                is_correct=draft.is_correct,
                elapsed_seconds=draft.elapsed_seconds,
                points_awarded=points_awarded,
                created_at=now,
            )
        )

"""PostgreSQL progress store.

Every write opens its own transaction and takes the user row with
``SELECT ... FOR UPDATE`` before touching progress rows, so all writes for one
user serialise on that lock (always user first, then progress: no lock-order
deadlocks between our own operations). Progress inserts additionally go
through ``ON CONFLICT DO NOTHING`` on the (user_id, problem_id) unique key.
Serialization failures and deadlocks surface as ``StoreConflict`` for the
awarding policy to retry.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from sqlalchemy import and_, case, delete, distinct, func, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mlo.db.models import Problem, RoadmapProgress, Submission, User, UserProgress
from mlo.errors import DisplayNameTaken, StoreConflict, UserNotFound
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

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


def _is_retryable(exc: DBAPIError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code in _RETRYABLE_SQLSTATES


def _user_record(user: User) -> UserRecord:
    return UserRecord(
        id=user.id,
        external_id=user.external_id,
        display_name=user.display_name,
        total_points=user.total_points,
        current_streak=user.current_streak,
        longest_streak=user.longest_streak,
        last_activity_at=user.last_activity_at,
        username_updated_at=user.username_updated_at,
        moderation_attempts=user.moderation_attempts,
        created_at=user.created_at,
    )


def _problem_record(problem: Problem) -> ProblemRecord:
    return ProblemRecord(
        id=problem.id,
        slug=problem.slug,
        title=problem.title,
        module=problem.module,
        difficulty=problem.difficulty,
        base_points=problem.base_points,
        display_order=problem.display_order,
        is_published=problem.is_published,
    )


def _progress_record(row: UserProgress) -> ProgressRecord:
    return ProgressRecord(
        user_id=row.user_id,
        problem_id=row.problem_id,
        status=row.status,
        attempts_count=row.attempts_count,
        first_attempt_at=row.first_attempt_at,
        completed_at=row.completed_at,
        fastest_time_seconds=row.fastest_time_seconds,
        points_earned=row.points_earned,
    )


def _roadmap_record(row: RoadmapProgress) -> RoadmapRecord:
    return RoadmapRecord(
        user_id=row.user_id,
        language=row.language,
        topics=CompletionSet(row.topic_ids),
        updated_at=row.updated_at,
    )


class SqlProgressStore:
    """``ProgressStore`` over the async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session, session.begin():
                yield session
        except DBAPIError as exc:
            if _is_retryable(exc):
                raise StoreConflict(str(exc.orig)) from exc
            raise

    # --- Users ---

    async def get_or_create_user(self, external_id: str) -> tuple[UserRecord, bool]:
        async with self._transaction() as session:
            stmt = (
                pg_insert(User)
                .values(external_id=external_id, created_at=datetime.now(timezone.utc))
                .on_conflict_do_nothing(index_elements=["external_id"])
                .returning(User.id)
            )
            created_id = (await session.execute(stmt)).scalar_one_or_none()
            result = await session.execute(select(User).where(User.external_id == external_id))
            return _user_record(result.scalar_one()), created_id is not None

    async def get_user(self, user_id: int) -> UserRecord | None:
        async with self._sessions() as session:
            user = await session.get(User, user_id)
            return _user_record(user) if user else None

    async def get_user_by_external_id(self, external_id: str) -> UserRecord | None:
        async with self._sessions() as session:
            result = await session.execute(select(User).where(User.external_id == external_id))
            user = result.scalar_one_or_none()
            return _user_record(user) if user else None

    async def delete_user_by_external_id(self, external_id: str) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                delete(User).where(User.external_id == external_id).returning(User.id)
            )
            return result.scalar_one_or_none() is not None

    async def set_display_name(
        self, user_id: int, display_name: str, changed_at: datetime | None = None
    ) -> UserRecord:
        normalized = display_name.lower()
        try:
            async with self._transaction() as session:
                user = await self._lock_user(session, user_id)
                taken = await session.execute(
                    select(User.id).where(
                        User.display_name_normalized == normalized,
                        User.id != user_id,
                    )
                )
                if taken.scalar_one_or_none() is not None:
                    raise DisplayNameTaken
                user.display_name = display_name
                user.display_name_normalized = normalized
                if changed_at is not None:
                    user.username_updated_at = changed_at
                await session.flush()
                return _user_record(user)
        except IntegrityError as exc:
            # Lost the race on the unique index to a concurrent rename.
            raise DisplayNameTaken from exc

    # --- Catalog ---

    async def get_problem(self, slug: str) -> ProblemRecord | None:
        async with self._sessions() as session:
            result = await session.execute(select(Problem).where(Problem.slug == slug))
            problem = result.scalar_one_or_none()
            return _problem_record(problem) if problem else None

    async def get_problems(self, slugs: Iterable[str]) -> dict[str, ProblemRecord]:
        slugs = list(slugs)
        if not slugs:
            return {}
        async with self._sessions() as session:
            result = await session.execute(select(Problem).where(Problem.slug.in_(slugs)))
            return {p.slug: _problem_record(p) for p in result.scalars()}

    async def upsert_problems(self, entries: Sequence[CatalogEntry]) -> int:
        if not entries:
            return 0
        async with self._transaction() as session:
            stmt = pg_insert(Problem).values([
                {
                    "slug": e.slug,
                    "title": e.title,
                    "module": e.module,
                    "difficulty": e.difficulty,
                    "base_points": e.base_points,
                    "display_order": e.display_order,
                    "is_published": e.is_published,
                }
                for e in entries
            ])
            stmt = stmt.on_conflict_do_update(
                index_elements=["slug"],
                set_={
                    "title": stmt.excluded.title,
                    "module": stmt.excluded.module,
                    "difficulty": stmt.excluded.difficulty,
                    "base_points": stmt.excluded.base_points,
                    "display_order": stmt.excluded.display_order,
                    "is_published": stmt.excluded.is_published,
                },
            )
            await session.execute(stmt)
        return len(entries)

    # --- Progress ---

    async def get_progress(self, user_id: int, problem_id: int) -> ProgressRecord | None:
        async with self._sessions() as session:
            row = await self._select_progress(session, user_id, problem_id)
            return _progress_record(row) if row else None

    async def record_attempt(
        self,
        user_id: int,
        problem_id: int,
        now: datetime,
        submission: SubmissionDraft | None = None,
    ) -> ProgressRecord:
        async with self._transaction() as session:
            user = await self._lock_user(session, user_id)
            row = await self._select_progress(session, user_id, problem_id, for_update=True)
            if row is None:
                row = await self._insert_progress(
                    session,
                    user_id=user_id,
                    problem_id=problem_id,
                    status=STATUS_IN_PROGRESS,
                    attempts_count=1,
                    first_attempt_at=now,
                )
            elif row.status != STATUS_COMPLETED:
                row.attempts_count += 1
            self._touch_user(user, now, points=0)
            if submission is not None:
                self._add_submission(session, user_id, problem_id, submission, 0, now)
            await session.flush()
            return _progress_record(row)

    async def complete(
        self,
        user_id: int,
        problem_id: int,
        elapsed_seconds: int | None,
        points: int,
        now: datetime,
        submission: SubmissionDraft | None = None,
    ) -> CompletionResult:
        async with self._transaction() as session:
            user = await self._lock_user(session, user_id)
            row = await self._select_progress(session, user_id, problem_id, for_update=True)
            if row is None:
                kind = CompletionKind.CREATED
                awarded = points
                row = await self._insert_progress(
                    session,
                    user_id=user_id,
                    problem_id=problem_id,
                    status=STATUS_COMPLETED,
                    attempts_count=1,
                    first_attempt_at=now,
                    completed_at=now,
                    fastest_time_seconds=elapsed_seconds,
                    points_earned=points,
                )
            elif row.status != STATUS_COMPLETED:
                kind = CompletionKind.UPDATED_FROM_INCOMPLETE
                awarded = points
                row.status = STATUS_COMPLETED
                row.attempts_count += 1
                row.completed_at = now
                row.fastest_time_seconds = elapsed_seconds
                row.points_earned = points
            else:
                kind = CompletionKind.ALREADY_COMPLETED
                awarded = 0
                row.attempts_count += 1
                row.fastest_time_seconds = merge_fastest(row.fastest_time_seconds, elapsed_seconds)
            self._touch_user(user, now, points=awarded)
            if submission is not None:
                self._add_submission(session, user_id, problem_id, submission, awarded, now)
            await session.flush()
            return CompletionResult(kind=kind, progress=_progress_record(row), points_awarded=awarded)

    async def import_completions(
        self,
        user_id: int,
        problems: Sequence[ProblemRecord],
        now: datetime,
    ) -> list[ProblemRecord]:
        if not problems:
            return []
        async with self._transaction() as session:
            user = await self._lock_user(session, user_id)
            stmt = (
                pg_insert(UserProgress)
                .values([
                    {
                        "user_id": user_id,
                        "problem_id": p.id,
                        "status": STATUS_COMPLETED,
                        "attempts_count": 1,
                        "first_attempt_at": now,
                        "completed_at": now,
                        "points_earned": p.base_points,
                    }
                    for p in problems
                ])
                .on_conflict_do_nothing(constraint="uq_user_progress_user_problem")
                .returning(UserProgress.problem_id)
            )
            inserted_ids = set((await session.execute(stmt)).scalars().all())
            inserted = [p for p in problems if p.id in inserted_ids]
            delta = sum(p.base_points for p in inserted)
            if delta:
                user.total_points += delta
            await session.flush()
            return inserted

    async def list_completed(self, user_id: int) -> list[CompletedProblem]:
        async with self._sessions() as session:
            result = await session.execute(
                select(Problem, UserProgress)
                .join(UserProgress, UserProgress.problem_id == Problem.id)
                .where(
                    UserProgress.user_id == user_id,
                    UserProgress.status == STATUS_COMPLETED,
                )
                .order_by(UserProgress.completed_at.desc())
            )
            return [
                CompletedProblem(problem=_problem_record(p), progress=_progress_record(up))
                for p, up in result.all()
            ]

    # --- Roadmap ---

    async def get_roadmap(self, user_id: int) -> RoadmapRecord | None:
        async with self._sessions() as session:
            row = await session.get(RoadmapProgress, user_id)
            return _roadmap_record(row) if row else None

    async def save_roadmap(
        self, user_id: int, language: str, topics: CompletionSet, now: datetime
    ) -> RoadmapRecord:
        async with self._transaction() as session:
            await self._lock_user(session, user_id)
            stmt = pg_insert(RoadmapProgress).values(
                user_id=user_id,
                language=language,
                topic_ids=topics.to_list(),
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id"],
                set_={
                    "language": stmt.excluded.language,
                    "topic_ids": stmt.excluded.topic_ids,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            await session.execute(stmt)
        return RoadmapRecord(user_id=user_id, language=language, topics=topics, updated_at=now)

    # --- Leaderboard ---

    async def leaderboard(self, since: datetime | None, limit: int) -> list[LeaderboardRow]:
        if since is None:
            completed = UserProgress.status == STATUS_COMPLETED
            count_expr = func.count(distinct(case((completed, UserProgress.problem_id))))
            avg_expr = func.avg(case((completed, UserProgress.fastest_time_seconds)))
            points_expr = User.total_points
            join_on = UserProgress.user_id == User.id
        else:
            count_expr = func.count(distinct(UserProgress.problem_id))
            avg_expr = func.avg(UserProgress.fastest_time_seconds)
            points_expr = func.coalesce(func.sum(UserProgress.points_earned), 0)
            join_on = and_(
                UserProgress.user_id == User.id,
                UserProgress.status == STATUS_COMPLETED,
                UserProgress.completed_at >= since,
            )

        stmt = (
            select(
                User.id,
                User.display_name,
                count_expr.label("completed_count"),
                points_expr.label("points"),
                avg_expr.label("avg_fastest_time"),
            )
            .join(UserProgress, join_on)
            .group_by(User.id)
            .order_by(count_expr.desc(), avg_expr.asc().nulls_last(), User.id.asc())
            .limit(limit)
        )
        async with self._sessions() as session:
            result = await session.execute(stmt)
            return [
                LeaderboardRow(
                    user_id=row.id,
                    display_name=row.display_name,
                    completed_count=int(row.completed_count),
                    points=int(row.points or 0),
                    avg_fastest_time=float(row.avg_fastest_time) if row.avg_fastest_time is not None else None,
                )
                for row in result
            ]

    async def ping(self) -> None:
        async with self._sessions() as session:
            await session.execute(text("SELECT 1"))

    # --- Helpers ---

    async def _lock_user(self, session: AsyncSession, user_id: int) -> User:
        result = await session.execute(select(User).where(User.id == user_id).with_for_update())
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFound
        return user

    async def _select_progress(
        self,
        session: AsyncSession,
        user_id: int,
        problem_id: int,
        *,
        for_update: bool = False,
    ) -> UserProgress | None:
        stmt = select(UserProgress).where(
            UserProgress.user_id == user_id,
            UserProgress.problem_id == problem_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def _insert_progress(self, session: AsyncSession, **values: object) -> UserProgress:
        stmt = (
            pg_insert(UserProgress)
            .values(**values)
            .on_conflict_do_nothing(constraint="uq_user_progress_user_problem")
            .returning(UserProgress.id)
        )
        row_id = (await session.execute(stmt)).scalar_one_or_none()
        if row_id is None:
            # A writer that bypassed the user lock got there first; retry from the top.
            raise StoreConflict("progress row appeared concurrently")
        return await session.get(UserProgress, row_id)

    def _touch_user(self, user: User, now: datetime, points: int) -> None:
        user.current_streak, user.longest_streak = advance_streak(
            user.current_streak, user.longest_streak, user.last_activity_at, now
        )
        user.last_activity_at = now
        # Safe as a read-modify-write: the caller holds the row lock.
        user.total_points += points

    def _add_submission(
        self,
        session: AsyncSession,
        user_id: int,
        problem_id: int,
        draft: SubmissionDraft,
        points_awarded: int,
        now: datetime,
    ) -> None:
        session.add(Submission(
            user_id=user_id,
            problem_id=problem_id,
            answer_text=draft.answer_text,
            is_correct=draft.is_correct,
            elapsed_seconds=draft.elapsed_seconds,
            points_awarded=points_awarded,
            created_at=now,
        ))

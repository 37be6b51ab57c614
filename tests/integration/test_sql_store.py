"""Integration tests for the PostgreSQL progress store.

Run only when MLO_TEST_DATABASE_URL points at a disposable PostgreSQL database.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mlo.catalog.seed import sync_catalog
from mlo.db import models  # noqa: F401
from mlo.db.base import Base
from mlo.errors import DisplayNameTaken, UserNotFound
from mlo.leaderboard.service import LeaderboardService
from mlo.leaderboard.windows import Window
from mlo.migration.importer import import_completions
from mlo.progress.completion_set import CompletionSet
from mlo.progress.awarding import award_completion
from mlo.progress.sql_store import SqlProgressStore
from mlo.progress.store import CompletionKind

DATABASE_URL = os.environ.get("MLO_TEST_DATABASE_URL")

pytestmark = [
    pytest.mark.asyncio,
    pytest.mark.skipif(not DATABASE_URL, reason="MLO_TEST_DATABASE_URL not set"),
]

NOW = datetime(2026, 3, 11, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def sql_store() -> AsyncGenerator[SqlProgressStore, None]:
    """Fresh schema per test."""
    engine = create_async_engine(DATABASE_URL, pool_size=20)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    store = SqlProgressStore(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    await sync_catalog(store)
    yield store
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


class TestSqlCompletion:
    async def test_complete_awards_once(self, sql_store):
        user, created = await sql_store.get_or_create_user("ext_1")
        problem = await sql_store.get_problem("log-transform")

        first = await sql_store.complete(user.id, problem.id, 50, 100, NOW)
        second = await sql_store.complete(user.id, problem.id, 20, 100, NOW + timedelta(minutes=5))

        assert created
        assert first.kind is CompletionKind.CREATED
        assert second.kind is CompletionKind.ALREADY_COMPLETED
        assert second.progress.fastest_time_seconds == 20
        assert second.progress.attempts_count == 2
        assert (await sql_store.get_user(user.id)).total_points == 100

    async def test_concurrent_completions_award_once(self, sql_store):
        user, _ = await sql_store.get_or_create_user("ext_race")
        problem = await sql_store.get_problem("residual-plot")

        results = await asyncio.gather(*[
            award_completion(sql_store, user.id, problem, elapsed_seconds=30 + i) for i in range(10)
        ])

        assert sum(r.points_awarded for r in results) == 100
        progress = await sql_store.get_progress(user.id, problem.id)
        assert progress.attempts_count == 10
        assert progress.fastest_time_seconds == 30
        assert (await sql_store.get_user(user.id)).total_points == 100

    async def test_incorrect_then_correct(self, sql_store):
        user, _ = await sql_store.get_or_create_user("ext_1")
        problem = await sql_store.get_problem("log-transform")
        await sql_store.record_attempt(user.id, problem.id, NOW)
        result = await sql_store.complete(user.id, problem.id, None, 100, NOW)
        assert result.kind is CompletionKind.UPDATED_FROM_INCOMPLETE
        assert result.progress.attempts_count == 2

    async def test_unknown_user(self, sql_store):
        problem = await sql_store.get_problem("log-transform")
        with pytest.raises(UserNotFound):
            await sql_store.complete(424242, problem.id, None, 100, NOW)


class TestSqlImport:
    async def test_import_is_idempotent(self, sql_store):
        user, _ = await sql_store.get_or_create_user("ext_1")
        slugs = ["log-transform", "residual-plot", "missing"]
        first = await import_completions(sql_store, user.id, slugs)
        second = await import_completions(sql_store, user.id, slugs)

        assert first.migrated_count == 2
        assert second.migrated_count == 0
        assert (await sql_store.get_user(user.id)).total_points == 200


class TestSqlLeaderboard:
    async def test_windows_and_ordering(self, sql_store):
        alice, _ = await sql_store.get_or_create_user("alice")
        bob, _ = await sql_store.get_or_create_user("bob")
        idle, _ = await sql_store.get_or_create_user("idle")
        lr = await sql_store.get_problem("log-transform")
        rp = await sql_store.get_problem("residual-plot")
        await sql_store.complete(alice.id, lr.id, 40, 100, datetime(2026, 2, 1, tzinfo=timezone.utc))
        await sql_store.complete(alice.id, rp.id, 20, 100, NOW)
        await sql_store.complete(bob.id, lr.id, None, 100, NOW)
        await sql_store.record_attempt(idle.id, rp.id, NOW)

        service = LeaderboardService(sql_store)
        all_time = await service.get_leaderboard(Window.ALL, now=NOW)
        monthly = await service.get_leaderboard(Window.MONTHLY, now=NOW)

        assert [(e.user_id, e.completed_count) for e in all_time] == [(alice.id, 2), (bob.id, 1), (idle.id, 0)]
        assert all_time[0].avg_fastest_time == 30.0
        assert all_time[0].points == 200
        assert [(e.user_id, e.rank) for e in monthly] == [(alice.id, 1), (bob.id, 2)]
        assert monthly[0].points == 100
        assert (await service.get_user_rank(bob.id)).rank == 2


class TestSqlUsers:
    async def test_display_name_unique_case_insensitive(self, sql_store):
        first, _ = await sql_store.get_or_create_user("first")
        second, _ = await sql_store.get_or_create_user("second")
        await sql_store.set_display_name(first.id, "Ada", NOW)
        with pytest.raises(DisplayNameTaken):
            await sql_store.set_display_name(second.id, "ada", NOW)

    async def test_rename_without_timestamp_keeps_cooldown_clock(self, sql_store):
        user, _ = await sql_store.get_or_create_user("ext_1")
        assert (await sql_store.set_display_name(user.id, "ada")).username_updated_at is None
        await sql_store.set_display_name(user.id, "grace", NOW)
        assert (await sql_store.set_display_name(user.id, "grace_h")).username_updated_at == NOW

    async def test_delete_cascades(self, sql_store):
        user, _ = await sql_store.get_or_create_user("ext_1")
        problem = await sql_store.get_problem("log-transform")
        await sql_store.complete(user.id, problem.id, 10, 100, NOW)

        assert await sql_store.delete_user_by_external_id("ext_1")
        assert await sql_store.get_progress(user.id, problem.id) is None
        assert await sql_store.leaderboard(None, 10) == []
        assert not await sql_store.delete_user_by_external_id("ext_1")


class TestSqlRoadmap:
    async def test_save_replaces_and_reads_back(self, sql_store):
        user, _ = await sql_store.get_or_create_user("ext_1")
        assert await sql_store.get_roadmap(user.id) is None

        await sql_store.save_roadmap(user.id, "english", CompletionSet(["en-ml-a", "en-ml-b"]), NOW)
        await sql_store.save_roadmap(user.id, "hindi", CompletionSet(["hi-dl-a"]), NOW + timedelta(days=1))

        record = await sql_store.get_roadmap(user.id)
        assert record.language == "hindi"
        assert record.topics == CompletionSet(["hi-dl-a"])
        assert record.updated_at == NOW + timedelta(days=1)

    async def test_unknown_user(self, sql_store):
        with pytest.raises(UserNotFound):
            await sql_store.save_roadmap(999, "english", CompletionSet(), NOW)

    async def test_deleted_with_user(self, sql_store):
        user, _ = await sql_store.get_or_create_user("ext_1")
        await sql_store.save_roadmap(user.id, "english", CompletionSet(["en-ml-a"]), NOW)
        await sql_store.delete_user_by_external_id("ext_1")
        assert await sql_store.get_roadmap(user.id) is None

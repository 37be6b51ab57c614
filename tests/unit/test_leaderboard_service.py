"""Unit tests for leaderboard aggregation over the three windows."""

from datetime import datetime, timedelta, timezone

import pytest

from mlo.config import get_settings
from mlo.leaderboard.service import LeaderboardService
from mlo.leaderboard.windows import Window

pytestmark = pytest.mark.asyncio

# Wednesday; weeks start on Sunday 2026-03-08, the month on 2026-03-01.
NOW = datetime(2026, 3, 11, 12, 0, tzinfo=timezone.utc)
LAST_MONTH = datetime(2026, 2, 20, 9, 0, tzinfo=timezone.utc)
EARLIER_THIS_MONTH = datetime(2026, 3, 3, 9, 0, tzinfo=timezone.utc)
THIS_WEEK = datetime(2026, 3, 9, 9, 0, tzinfo=timezone.utc)


async def _user(store, external_id, display_name=None):
    user, _ = await store.get_or_create_user(external_id)
    if display_name:
        await store.set_display_name(user.id, display_name, NOW)
    return user


async def _complete(store, user, slug, when, elapsed=None):
    problem = await store.get_problem(slug)
    return await store.complete(user.id, problem.id, elapsed, problem.base_points, when)


class TestAllTime:
    async def test_orders_by_count_then_average_time(self, store):
        alice = await _user(store, "a", "alice")
        bob = await _user(store, "b", "bob")
        cara = await _user(store, "c", "cara")
        for slug in ("log-transform", "residual-plot"):
            await _complete(store, alice, slug, THIS_WEEK, elapsed=60)
            await _complete(store, bob, slug, THIS_WEEK, elapsed=30)
        await _complete(store, cara, "log-transform", THIS_WEEK, elapsed=5)
        await _complete(store, cara, "residual-plot", THIS_WEEK, elapsed=5)
        await _complete(store, cara, "autocorrelation", THIS_WEEK)

        entries = await LeaderboardService(store).get_leaderboard(Window.ALL, now=NOW)

        assert [(e.display_name, e.rank) for e in entries] == [("cara", 1), ("bob", 2), ("alice", 3)]
        assert entries[0].completed_count == 3
        assert entries[0].avg_fastest_time == 5.0
        assert entries[0].points == 300

    async def test_untimed_user_ranks_after_timed_peer(self, store):
        timed = await _user(store, "timed")
        untimed = await _user(store, "untimed")
        await _complete(store, untimed, "log-transform", THIS_WEEK)
        await _complete(store, timed, "log-transform", THIS_WEEK, elapsed=900)

        entries = await LeaderboardService(store).get_leaderboard(Window.ALL, now=NOW)
        assert [e.user_id for e in entries] == [timed.id, untimed.id]
        assert entries[1].avg_fastest_time is None

    async def test_includes_users_with_only_attempts(self, store):
        solver = await _user(store, "solver")
        trier = await _user(store, "trier")
        await _user(store, "idle")
        await _complete(store, solver, "log-transform", THIS_WEEK)
        problem = await store.get_problem("log-transform")
        await store.record_attempt(trier.id, problem.id, THIS_WEEK)

        entries = await LeaderboardService(store).get_leaderboard(Window.ALL, now=NOW)

        assert [(e.user_id, e.completed_count) for e in entries] == [(solver.id, 1), (trier.id, 0)]

    async def test_limit(self, store):
        for i in range(5):
            user = await _user(store, f"u{i}")
            await _complete(store, user, "log-transform", THIS_WEEK)
        entries = await LeaderboardService(store).get_leaderboard(Window.ALL, limit=3, now=NOW)
        assert [e.rank for e in entries] == [1, 2, 3]


class TestWindows:
    async def _populate(self, store):
        user = await _user(store, "windowed")
        await _complete(store, user, "log-transform", LAST_MONTH, elapsed=100)
        await _complete(store, user, "residual-plot", EARLIER_THIS_MONTH, elapsed=50)
        await _complete(store, user, "autocorrelation", THIS_WEEK, elapsed=10)
        return user

    async def test_monthly_counts_completions_since_first_of_month(self, store):
        await self._populate(store)
        (entry,) = await LeaderboardService(store).get_leaderboard(Window.MONTHLY, now=NOW)
        assert entry.completed_count == 2
        assert entry.points == 200
        assert entry.avg_fastest_time == 30.0

    async def test_weekly_counts_completions_since_week_start(self, store):
        await self._populate(store)
        (entry,) = await LeaderboardService(store).get_leaderboard(Window.WEEKLY, now=NOW)
        assert entry.completed_count == 1
        assert entry.points == 100
        assert entry.avg_fastest_time == 10.0

    async def test_all_time_points_are_the_stored_total(self, store):
        await self._populate(store)
        (entry,) = await LeaderboardService(store).get_leaderboard(Window.ALL, now=NOW)
        assert entry.completed_count == 3
        assert entry.points == 300

    async def test_windowed_views_skip_users_without_window_completions(self, store):
        old = await _user(store, "old")
        await _complete(store, old, "log-transform", LAST_MONTH)
        assert await LeaderboardService(store).get_leaderboard(Window.WEEKLY, now=NOW) == []
        assert await LeaderboardService(store).get_leaderboard(Window.MONTHLY, now=NOW) == []

    async def test_boundary_is_inclusive(self, store):
        user = await _user(store, "edge")
        await _complete(store, user, "log-transform", datetime(2026, 3, 8, tzinfo=timezone.utc))
        entries = await LeaderboardService(store).get_leaderboard(Window.WEEKLY, now=NOW)
        assert [e.user_id for e in entries] == [user.id]

    async def test_just_before_week_start_excluded(self, store):
        user = await _user(store, "edge")
        await _complete(store, user, "log-transform", datetime(2026, 3, 8, tzinfo=timezone.utc) - timedelta(seconds=1))
        assert await LeaderboardService(store).get_leaderboard(Window.WEEKLY, now=NOW) == []


class TestUserRank:
    async def test_rank_of_ranked_user(self, store):
        first = await _user(store, "first")
        second = await _user(store, "second")
        await _complete(store, first, "log-transform", THIS_WEEK)
        await _complete(store, first, "residual-plot", THIS_WEEK)
        await _complete(store, second, "log-transform", THIS_WEEK)

        entry = await LeaderboardService(store).get_user_rank(second.id)
        assert entry.rank == 2
        assert entry.completed_count == 1

    async def test_user_without_progress_is_unranked(self, store):
        idle = await _user(store, "idle")
        assert await LeaderboardService(store).get_user_rank(idle.id) is None

    async def test_user_beyond_scan_cap_is_unranked(self, store, monkeypatch):
        monkeypatch.setenv("MLO_RANK_SCAN_CAP", "2")
        get_settings.cache_clear()
        users = [await _user(store, f"u{i}") for i in range(3)]
        for user in users:
            await _complete(store, user, "log-transform", THIS_WEEK)

        service = LeaderboardService(store)
        assert (await service.get_user_rank(users[1].id)).rank == 2
        assert await service.get_user_rank(users[2].id) is None

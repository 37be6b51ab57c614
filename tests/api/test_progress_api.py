"""API tests for /api/v1/progress/*."""

import asyncio

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio


class TestSubmit:
    async def test_requires_authentication(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/progress/submit",
            json={"problemSlug": "log-transform", "answerCorrect": True},
        )
        assert response.status_code == 401
        assert response.json()["kind"] == "unauthenticated"

    async def test_invalid_token_rejected(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/progress/submit",
            json={"problemSlug": "log-transform", "answerCorrect": True},
            headers={"Authorization": "Bearer nonsense"},
        )
        assert response.status_code == 401

    async def test_correct_answer_awards_once(self, client: AsyncClient, auth_headers) -> None:
        body = {"problemSlug": "log-transform", "answerCorrect": True, "elapsedSeconds": 42}
        first = await client.post("/api/v1/progress/submit", json=body, headers=auth_headers())
        second = await client.post("/api/v1/progress/submit", json=body, headers=auth_headers())

        assert first.status_code == 200
        assert first.json() == {"status": "completed", "pointsAwarded": 100}
        assert second.json() == {"status": "completed", "pointsAwarded": 0}

    async def test_incorrect_answer(self, client: AsyncClient, auth_headers, store) -> None:
        response = await client.post(
            "/api/v1/progress/submit",
            json={"problemSlug": "log-transform", "answerCorrect": False, "answerText": "drop outliers"},
            headers=auth_headers(),
        )
        assert response.json() == {"status": "in_progress", "pointsAwarded": 0}
        assert store.submissions[-1].answer_text == "drop outliers"

    async def test_first_request_creates_user(self, client: AsyncClient, auth_headers, store) -> None:
        await client.post(
            "/api/v1/progress/submit",
            json={"problemSlug": "log-transform", "answerCorrect": False},
            headers=auth_headers("user_new"),
        )
        user = await store.get_user_by_external_id("user_new")
        assert user is not None
        assert user.total_points == 0

    async def test_unknown_problem(self, client: AsyncClient, auth_headers) -> None:
        response = await client.post(
            "/api/v1/progress/submit",
            json={"problemSlug": "does-not-exist", "answerCorrect": True},
            headers=auth_headers(),
        )
        assert response.status_code == 404
        assert response.json()["kind"] == "problem_not_found"

    async def test_missing_fields(self, client: AsyncClient, auth_headers) -> None:
        response = await client.post("/api/v1/progress/submit", json={"problemSlug": "log-transform"}, headers=auth_headers())
        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"

    async def test_negative_elapsed(self, client: AsyncClient, auth_headers) -> None:
        response = await client.post(
            "/api/v1/progress/submit",
            json={"problemSlug": "log-transform", "answerCorrect": True, "elapsedSeconds": -5},
            headers=auth_headers(),
        )
        assert response.status_code == 422

    async def test_concurrent_duplicate_submissions(self, client: AsyncClient, auth_headers, store) -> None:
        headers = auth_headers("user_racer")
        body = {"problemSlug": "residual-plot", "answerCorrect": True, "elapsedSeconds": 12}
        responses = await asyncio.gather(*[
            client.post("/api/v1/progress/submit", json=body, headers=headers) for _ in range(8)
        ])

        assert all(r.status_code == 200 for r in responses)
        assert sum(r.json()["pointsAwarded"] for r in responses) == 100
        user = await store.get_user_by_external_id("user_racer")
        assert user.total_points == 100


class TestComplete:
    async def test_mark_complete(self, client: AsyncClient, auth_headers) -> None:
        response = await client.post(
            "/api/v1/progress/complete",
            json={"problemSlug": "autocorrelation"},
            headers=auth_headers(),
        )
        assert response.status_code == 200
        assert response.json() == {"status": "success", "problemSlug": "autocorrelation", "pointsAwarded": 100}

    async def test_requires_authentication(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/progress/complete", json={"problemSlug": "autocorrelation"})
        assert response.status_code == 401


class TestImport:
    async def test_import_is_idempotent(self, client: AsyncClient, auth_headers) -> None:
        body = {"completedSlugs": ["log-transform", "residual-plot", "unknown-slug"]}
        first = await client.post("/api/v1/progress/import", json=body, headers=auth_headers())
        second = await client.post("/api/v1/progress/import", json=body, headers=auth_headers())

        assert first.json() == {"migratedCount": 2, "skippedCount": 1}
        assert second.json() == {"migratedCount": 0, "skippedCount": 3}

    async def test_empty_list(self, client: AsyncClient, auth_headers) -> None:
        response = await client.post("/api/v1/progress/import", json={"completedSlugs": []}, headers=auth_headers())
        assert response.json()["migratedCount"] == 0

    async def test_non_string_entries(self, client: AsyncClient, auth_headers) -> None:
        response = await client.post(
            "/api/v1/progress/import",
            json={"completedSlugs": ["log-transform", 5]},
            headers=auth_headers(),
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "validation_error"

    async def test_not_a_list(self, client: AsyncClient, auth_headers) -> None:
        response = await client.post(
            "/api/v1/progress/import",
            json={"completedSlugs": "log-transform"},
            headers=auth_headers(),
        )
        assert response.status_code == 400


class TestCompletions:
    async def test_anonymous_gets_empty_list(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/progress/completions")
        assert response.status_code == 200
        assert response.json() == {
            "status": "not_authenticated",
            "completedSlugs": [],
            "exercisesCompleted": 0,
            "totalPoints": 0,
        }

    async def test_bad_token_is_treated_as_anonymous(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/progress/completions", headers={"Authorization": "Bearer junk"})
        assert response.json()["status"] == "not_authenticated"

    async def test_lists_completed_slugs(self, client: AsyncClient, auth_headers) -> None:
        headers = auth_headers()
        await client.post("/api/v1/progress/complete", json={"problemSlug": "residual-plot"}, headers=headers)
        await client.post("/api/v1/progress/complete", json={"problemSlug": "log-transform"}, headers=headers)
        await client.post(
            "/api/v1/progress/submit",
            json={"problemSlug": "autocorrelation", "answerCorrect": False},
            headers=headers,
        )

        data = (await client.get("/api/v1/progress/completions", headers=headers)).json()
        assert data == {
            "status": "success",
            "completedSlugs": ["log-transform", "residual-plot"],
            "exercisesCompleted": 2,
            "totalPoints": 200,
        }

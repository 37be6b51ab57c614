"""Request/response schemas for progress endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from mlo.progress.roadmap import RoadmapView
from mlo.schemas import CamelModel


class SubmitRequest(CamelModel):
    problem_slug: str = Field(min_length=1, max_length=128)
    answer_correct: bool
    elapsed_seconds: int | None = Field(default=None, ge=0)
    answer_text: str = Field(default="", max_length=10_000)


class SubmitResponse(CamelModel):
    status: str
    points_awarded: int


class CompleteRequest(CamelModel):
    problem_slug: str = Field(min_length=1, max_length=128)


class CompleteResponse(CamelModel):
    status: Literal["success"] = "success"
    problem_slug: str
    points_awarded: int


class ImportRequest(CamelModel):
    # Entry-level checks happen in CompletionSet.parse so they map to domain errors.
    completed_slugs: Any = None


class ImportResponse(CamelModel):
    migrated_count: int
    skipped_count: int = 0


class CompletionsResponse(CamelModel):
    status: Literal["success", "not_authenticated"]
    completed_slugs: list[str]
    exercises_completed: int
    total_points: int


class RoadmapUpdateRequest(CamelModel):
    # ``completions`` is the {topicId: bool} map older clients send.
    language: Any = None
    completed_topics: Any = None
    completions: Any = None


class RoadmapResponse(CamelModel):
    status: Literal["success", "not_authenticated"]
    language: str
    completed_topics: list[str]
    ml_topics_completed: int
    ml_topics_total: int
    dl_topics_completed: int
    dl_topics_total: int
    updated_at: datetime | None = None

    @classmethod
    def from_view(cls, view: RoadmapView, status: str = "success") -> RoadmapResponse:
        return cls(
            status=status,
            language=view.language,
            completed_topics=view.topics.to_list(),
            ml_topics_completed=view.stats.ml_completed,
            ml_topics_total=view.stats.ml_total,
            dl_topics_completed=view.stats.dl_completed,
            dl_topics_total=view.stats.dl_total,
            updated_at=view.updated_at,
        )

"""Learning roadmap progress.

The roadmap is a fixed curriculum of Machine Learning and Deep Learning topics,
published per language. Topic ids carry the language and track, e.g.
``en-ml-linear-regression`` or ``hi-dl-cnn``. A user's progress is the set of
ids they ticked off; counts are derived from it for the selected language.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from mlo.config import get_settings
from mlo.errors import ProgressValidationError
from mlo.progress.completion_set import CompletionSet
from mlo.progress.store import ProgressStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class Curriculum:
    prefix: str
    ml_topics: int
    dl_topics: int


CURRICULA = {
    "english": Curriculum(prefix="en-", ml_topics=20, dl_topics=14),
    "hindi": Curriculum(prefix="hi-", ml_topics=19, dl_topics=11),
}
DEFAULT_LANGUAGE = "english"


@dataclass(frozen=True)
class RoadmapStats:
    ml_completed: int
    ml_total: int
    dl_completed: int
    dl_total: int


@dataclass(frozen=True)
class RoadmapView:
    language: str
    topics: CompletionSet
    stats: RoadmapStats
    updated_at: datetime | None = None


def roadmap_stats(topics: CompletionSet, language: str) -> RoadmapStats:
    """Count ticked-off ML and DL topics belonging to ``language``'s curriculum."""
    curriculum = CURRICULA[language]
    ml = dl = 0
    for topic in topics:
        if not topic.startswith(curriculum.prefix):
            continue
        if "-ml-" in topic:
            ml += 1
        elif "-dl-" in topic:
            dl += 1
    return RoadmapStats(
        ml_completed=ml,
        ml_total=curriculum.ml_topics,
        dl_completed=dl,
        dl_total=curriculum.dl_topics,
    )


def empty_roadmap(language: str = DEFAULT_LANGUAGE) -> RoadmapView:
    topics = CompletionSet()
    return RoadmapView(language=language, topics=topics, stats=roadmap_stats(topics, language))


def parse_language(language: object) -> str:
    if not isinstance(language, str) or language.strip().lower() not in CURRICULA:
        msg = f"language must be one of: {', '.join(sorted(CURRICULA))}"
        raise ProgressValidationError(msg)
    return language.strip().lower()


def parse_topics(completed_topics: object, completions: object) -> CompletionSet:
    """Topic ids from the list form, or from the ``{topicId: bool}`` map older clients send."""
    max_topics = get_settings().roadmap_max_topics
    if completed_topics is not None:
        return CompletionSet.parse(completed_topics, max_size=max_topics, field="completedTopics", label="topic id")
    if completions is not None:
        return CompletionSet.from_flags(completions, max_size=max_topics)
    msg = "Missing completedTopics"
    raise ProgressValidationError(msg)


class RoadmapService:
    def __init__(self, store: ProgressStore) -> None:
        self.store = store

    async def get(self, user_id: int) -> RoadmapView:
        record = await self.store.get_roadmap(user_id)
        if record is None:
            return empty_roadmap()
        return RoadmapView(
            language=record.language,
            topics=record.topics,
            stats=roadmap_stats(record.topics, record.language),
            updated_at=record.updated_at,
        )

    async def save(
        self,
        user_id: int,
        language: object,
        completed_topics: object = None,
        completions: object = None,
        now: datetime | None = None,
    ) -> RoadmapView:
        """Replace the user's roadmap progress. Validation happens before the store is touched."""
        lang = parse_language(language)
        topics = parse_topics(completed_topics, completions)
        record = await self.store.save_roadmap(user_id, lang, topics, now or datetime.now(timezone.utc))
        stats = roadmap_stats(record.topics, record.language)
        logger.info(
            "roadmap_saved",
            user_id=user_id,
            language=lang,
            ml_completed=stats.ml_completed,
            dl_completed=stats.dl_completed,
        )
        return RoadmapView(language=lang, topics=record.topics, stats=stats, updated_at=record.updated_at)

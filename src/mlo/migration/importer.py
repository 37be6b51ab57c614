"""Bulk migration of externally-held completion lists.

Replays a user's previously recorded completions (e.g. from client-side
storage) into the progress store. Idempotent: a problem that already has a
progress row in any status is skipped, so a second run awards nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from mlo.config import get_settings
from mlo.errors import UserNotFound
from mlo.progress.awarding import award_imported_completions
from mlo.progress.completion_set import CompletionSet
from mlo.progress.store import ProgressStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class ImportReport:
    migrated: list[str] = field(default_factory=list)
    skipped_existing: list[str] = field(default_factory=list)
    skipped_unknown: list[str] = field(default_factory=list)
    points_awarded: int = 0

    @property
    def migrated_count(self) -> int:
        return len(self.migrated)


async def import_completions(
    store: ProgressStore,
    user_id: int,
    slugs: object,
) -> ImportReport:
    """Import ``slugs`` as completions for ``user_id``.

    Raises ``ProgressValidationError`` for a malformed slug list and
    ``UserNotFound`` for an unknown user. Unknown or unpublished slugs are
    logged and skipped.
    """
    completion_set = slugs if isinstance(slugs, CompletionSet) else CompletionSet.parse(
        slugs, max_size=get_settings().import_max_slugs
    )
    if not completion_set:
        return ImportReport()

    if await store.get_user(user_id) is None:
        raise UserNotFound

    found = await store.get_problems(completion_set)
    known = [found[slug] for slug in completion_set if slug in found and found[slug].is_published]
    unknown = completion_set.difference(p.slug for p in known).to_list()
    for slug in unknown:
        logger.warning("migration_skipped_unknown_slug", user_id=user_id, slug=slug)

    inserted = await award_imported_completions(store, user_id, known)
    inserted_slugs = {p.slug for p in inserted}
    return ImportReport(
        migrated=[p.slug for p in inserted],
        skipped_existing=[p.slug for p in known if p.slug not in inserted_slugs],
        skipped_unknown=unknown,
        points_awarded=sum(p.base_points for p in inserted),
    )

"""Problem catalog seed data: the Linear Regression module."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from mlo.progress.store import CatalogEntry, ProgressStore

logger = logging.getLogger(__name__)

LINEAR_REGRESSION = "LinearRegression"

DEFAULT_CATALOG: list[CatalogEntry] = [
    CatalogEntry(
        slug="log-transform",
        title="Transform, Transform!",
        module=LINEAR_REGRESSION,
        difficulty="beginner",
        display_order=1,
    ),
    CatalogEntry(
        slug="dropping-the-junk",
        title="Dropping the Junk",
        module=LINEAR_REGRESSION,
        difficulty="beginner",
        display_order=2,
    ),
    CatalogEntry(
        slug="categorical-features",
        title="Categorical Features",
        module=LINEAR_REGRESSION,
        difficulty="beginner",
        display_order=3,
    ),
    CatalogEntry(
        slug="residual-plot",
        title="Residual Plot Analysis",
        module=LINEAR_REGRESSION,
        difficulty="intermediate",
        display_order=4,
    ),
    CatalogEntry(
        slug="more-residuals",
        title="More Residuals",
        module=LINEAR_REGRESSION,
        difficulty="intermediate",
        display_order=5,
    ),
    CatalogEntry(
        slug="autocorrelation",
        title="Autocorrelation",
        module=LINEAR_REGRESSION,
        difficulty="advanced",
        display_order=6,
    ),
]

DIFFICULTIES = frozenset({"beginner", "intermediate", "advanced", "expert"})


async def sync_catalog(store: ProgressStore, entries: Sequence[CatalogEntry] | None = None) -> int:
    """Upsert catalog entries by slug (idempotent).

    Points already earned on a problem are never recomputed when its base
    points change.
    """
    if entries is None:
        entries = DEFAULT_CATALOG
    for entry in entries:
        if entry.difficulty not in DIFFICULTIES:
            msg = f"Unknown difficulty {entry.difficulty!r} for problem {entry.slug}"
            raise ValueError(msg)
        if entry.base_points < 0:
            msg = f"Negative base points for problem {entry.slug}"
            raise ValueError(msg)
    count = await store.upsert_problems(entries)
    logger.info("Synced %d catalog problems", count)
    return count

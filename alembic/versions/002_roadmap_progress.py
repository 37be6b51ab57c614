"""Learning roadmap progress.

One row per user holding the ticked-off topic ids as a text array.

Revision ID: 002_roadmap_progress
Revises: 001_progress_tables
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_roadmap_progress"
down_revision: str | None = "001_progress_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS roadmap_progress (
            user_id BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            language VARCHAR(16) NOT NULL DEFAULT 'english',
            topic_ids VARCHAR(128)[] NOT NULL DEFAULT '{}',
            updated_at TIMESTAMPTZ NOT NULL
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS roadmap_progress")

"""Progress tracking tables.

Creates users, problems, user_progress and submissions. Every child row
cascades on user deletion.

Revision ID: 001_progress_tables
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_progress_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            external_id VARCHAR(128) UNIQUE NOT NULL,
            display_name VARCHAR(32),
            display_name_normalized VARCHAR(32) UNIQUE,
            total_points INTEGER NOT NULL DEFAULT 0 CHECK (total_points >= 0),
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_activity_at TIMESTAMPTZ,
            username_updated_at TIMESTAMPTZ,
            moderation_attempts INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_users_total_points
        ON users(total_points)
    """)

    # --- Problems ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS problems (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(128) UNIQUE NOT NULL,
            title VARCHAR(200) NOT NULL,
            module VARCHAR(64) NOT NULL,
            difficulty VARCHAR(16) NOT NULL DEFAULT 'beginner',
            base_points INTEGER NOT NULL DEFAULT 100,
            display_order INTEGER NOT NULL DEFAULT 0,
            is_published BOOLEAN NOT NULL DEFAULT true
        )
    """)

    # --- User Progress ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_progress (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            problem_id INTEGER NOT NULL REFERENCES problems(id) ON DELETE CASCADE,
            status VARCHAR(16) NOT NULL,
            attempts_count INTEGER NOT NULL DEFAULT 1,
            first_attempt_at TIMESTAMPTZ NOT NULL,
            completed_at TIMESTAMPTZ,
            fastest_time_seconds INTEGER,
            points_earned INTEGER,
            CONSTRAINT uq_user_progress_user_problem UNIQUE (user_id, problem_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_progress_completed_at
        ON user_progress(status, completed_at)
    """)

    # --- Submissions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS submissions (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            problem_id INTEGER NOT NULL REFERENCES problems(id) ON DELETE CASCADE,
            answer_text TEXT NOT NULL DEFAULT '',
            is_correct BOOLEAN NOT NULL,
            elapsed_seconds INTEGER,
            points_awarded INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_submissions_user_problem
        ON submissions(user_id, problem_id)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS submissions")
    op.execute("DROP TABLE IF EXISTS user_progress")
    op.execute("DROP TABLE IF EXISTS problems")
    op.execute("DROP TABLE IF EXISTS users")

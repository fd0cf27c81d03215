"""Progression tables.

Creates achievements, user_achievements, user_streaks, xp_ledger and
level_rewards, and adds the denormalized progression columns to users.
The betting, racing and user tables are owned by other services.

Revision ID: 001_progression_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_progression_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users: denormalized progression ---
    op.execute("""
        ALTER TABLE users
            ADD COLUMN IF NOT EXISTS xp BIGINT NOT NULL DEFAULT 0,
            ADD COLUMN IF NOT EXISTS level INTEGER NOT NULL DEFAULT 1,
            ADD COLUMN IF NOT EXISTS achievement_count INTEGER NOT NULL DEFAULT 0,
            ADD COLUMN IF NOT EXISTS last_achievement_unlocked_at TIMESTAMPTZ,
            ADD COLUMN IF NOT EXISTS current_title VARCHAR(64)
    """)

    # --- Achievement catalog ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id BIGSERIAL PRIMARY KEY,
            key VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            category VARCHAR(32) NOT NULL,
            rarity VARCHAR(16) NOT NULL,
            icon VARCHAR(32) NOT NULL DEFAULT '',
            xp_reward INTEGER NOT NULL DEFAULT 0,
            unlocks_title VARCHAR(64),
            condition JSONB NOT NULL,
            prerequisite_key VARCHAR(64),
            is_temporary BOOLEAN NOT NULL DEFAULT false,
            can_be_lost BOOLEAN NOT NULL DEFAULT false,
            tier_level INTEGER NOT NULL DEFAULT 0,
            chain_name VARCHAR(64),
            domain VARCHAR(16) NOT NULL DEFAULT 'BETTING',
            sort_order INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_achievements_category ON achievements(category)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_achievements_rarity ON achievements(rarity)")

    # --- User achievements (revoked rows are kept) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            achievement_id BIGINT NOT NULL REFERENCES achievements(id) ON DELETE CASCADE,
            unlocked_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            revoked_at TIMESTAMPTZ,
            revocation_reason VARCHAR(256),
            times_earned INTEGER NOT NULL DEFAULT 1,
            progress JSONB,
            notification_sent BOOLEAN NOT NULL DEFAULT false,
            CONSTRAINT uq_user_achievements_user_achievement UNIQUE (user_id, achievement_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_user_achievements_user ON user_achievements(user_id)")

    # --- Streaks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_streaks (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            current_monthly_streak INTEGER NOT NULL DEFAULT 0,
            monthly_streak_started_at TIMESTAMPTZ,
            current_lifetime_streak INTEGER NOT NULL DEFAULT 0,
            longest_lifetime_streak INTEGER NOT NULL DEFAULT 0,
            lifetime_streak_started_at TIMESTAMPTZ,
            last_bet_week_number INTEGER,
            last_bet_year INTEGER,
            total_weeks_participated INTEGER NOT NULL DEFAULT 0,
            current_win_streak INTEGER NOT NULL DEFAULT 0,
            best_win_streak INTEGER NOT NULL DEFAULT 0,
            last_win_week_number INTEGER,
            last_win_year INTEGER,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- XP ledger (append-only) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            xp_amount INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            related_entity_id VARCHAR(128),
            description VARCHAR(256),
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_xp_ledger_user ON xp_ledger(user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_xp_ledger_earned ON xp_ledger(earned_at)")

    # --- Level rewards ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS level_rewards (
            id BIGSERIAL PRIMARY KEY,
            level INTEGER UNIQUE NOT NULL,
            reward_type VARCHAR(16) NOT NULL,
            reward_data JSONB NOT NULL DEFAULT '{}',
            description TEXT NOT NULL
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS level_rewards CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_ledger CASCADE")
    op.execute("DROP TABLE IF EXISTS user_streaks CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS achievements CASCADE")
    op.execute("""
        ALTER TABLE users
            DROP COLUMN IF EXISTS current_title,
            DROP COLUMN IF EXISTS last_achievement_unlocked_at,
            DROP COLUMN IF EXISTS achievement_count,
            DROP COLUMN IF EXISTS level,
            DROP COLUMN IF EXISTS xp
    """)

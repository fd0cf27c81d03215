"""ORM models for the progression engine.

Tables in the "external" sections are owned by the betting, racing and
user services; the engine only reads them (plus the denormalized
progression columns on users). Everything under "Progression" is written
exclusively by this package.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from podium.db.base import Base, BigIntPK, JSONType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# External: users & competitors
# ---------------------------------------------------------------------------


class Competitor(Base):
    """Racing competitor with career aggregates maintained by the rating service."""

    __tablename__ = "competitors"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    race_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    win_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    best_win_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    play_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    best_play_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=1500.0, server_default="1500")
    rating_deviation: Mapped[float] = mapped_column(Float, nullable=False, default=350.0, server_default="350")
    avg_rank_12: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")


class User(Base):
    """Player account. Progression columns are denormalized for O(1) reads."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    display_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    competitor_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("competitors.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # --- Progression (written by this package) ---
    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    achievement_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_achievement_unlocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    current_title: Mapped[str | None] = mapped_column(String(64), nullable=True)


# ---------------------------------------------------------------------------
# External: betting
# ---------------------------------------------------------------------------


class BettingWeek(Base):
    """A weekly betting round; its start date anchors streak week numbers."""

    __tablename__ = "betting_weeks"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)


class Bet(Base):
    """One user's podium prediction for one betting week."""

    __tablename__ = "bets"
    __table_args__ = (
        UniqueConstraint("user_id", "betting_week_id", name="uq_bets_user_week"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    betting_week_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("betting_weeks.id"), nullable=False)
    placed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    is_finalized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    points_earned: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    picks: Mapped[list[BetPick]] = relationship(
        "BetPick", back_populates="bet", lazy="selectin", cascade="all, delete-orphan"
    )


class BetPick(Base):
    """A single position pick (first/second/third) inside a bet."""

    __tablename__ = "bet_picks"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    bet_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("bets.id", ondelete="CASCADE"), nullable=False)
    competitor_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("competitors.id"), nullable=False)
    position: Mapped[str] = mapped_column(String(8), nullable=False)
    odd_at_bet: Mapped[float] = mapped_column(Float, nullable=False)
    has_boost: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    bet: Mapped[Bet] = relationship("Bet", back_populates="picks")


class BettorRanking(Base):
    """Monthly bettor leaderboard row computed by the rankings job."""

    __tablename__ = "bettor_rankings"
    __table_args__ = (
        UniqueConstraint("user_id", "month", "year", name="uq_bettor_rankings_user_month"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    total_points: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)


# ---------------------------------------------------------------------------
# Progression
# ---------------------------------------------------------------------------


class AchievementDefinition(Base):
    """Achievement catalog entry. Only created or updated by catalog seeding."""

    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    rarity: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    icon: Mapped[str] = mapped_column(String(32), nullable=False, default="", server_default="")
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    unlocks_title: Mapped[str | None] = mapped_column(String(64), nullable=True)
    condition: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    prerequisite_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_temporary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    can_be_lost: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    tier_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    chain_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    domain: Mapped[str] = mapped_column(String(16), nullable=False, default="BETTING", server_default="BETTING")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class UserAchievement(Base):
    """One row per (user, achievement). Revocation marks the row, never deletes it."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_achievement"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    achievement_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False
    )
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revocation_reason: Mapped[str | None] = mapped_column(String(256), nullable=True)
    times_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    progress: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    notification_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    achievement: Mapped[AchievementDefinition] = relationship("AchievementDefinition", lazy="joined")

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None


class UserStreak(Base):
    """Weekly participation and win streaks. Mutated by the streak tracker only."""

    __tablename__ = "user_streaks"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    # Participation (monthly counter resets on the 1st)
    current_monthly_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    monthly_streak_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    current_lifetime_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_lifetime_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    lifetime_streak_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_bet_week_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_bet_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_weeks_participated: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    # Wins
    current_win_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    best_win_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_win_week_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_win_year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class XPLedger(Base):
    """Append-only XP transaction log. Rows are never updated or deleted."""

    __tablename__ = "xp_ledger"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    xp_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    related_entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)


class LevelReward(Base):
    """Static level -> reward table. Read-only at runtime."""

    __tablename__ = "level_rewards"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    level: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    reward_type: Mapped[str] = mapped_column(String(16), nullable=False)
    reward_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

"""Pydantic response models for progression endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# --- Achievements ---


class AchievementResponse(BaseModel):
    id: int
    key: str
    name: str
    description: str
    category: str
    rarity: str
    icon: str
    xp_reward: int
    unlocks_title: str | None = None
    domain: str
    chain_name: str | None = None
    tier_level: int = 0
    prerequisite_key: str | None = None
    is_temporary: bool = False
    can_be_lost: bool = False
    is_unlocked: bool = False
    unlocked_at: datetime | None = None
    times_earned: int = 0
    progress: float = 0.0


class AchievementListResponse(BaseModel):
    achievements: list[AchievementResponse]
    total: int
    unlocked: int


class UserAchievementResponse(BaseModel):
    key: str
    name: str
    description: str
    category: str
    rarity: str
    icon: str
    unlocks_title: str | None = None
    is_temporary: bool = False
    unlocked_at: datetime
    times_earned: int = 1


class UserAchievementsResponse(BaseModel):
    achievements: list[UserAchievementResponse]
    total: int


# --- Stats ---


class BettingStats(BaseModel):
    bets_placed: int
    bets_won: int
    perfect_bets: int
    total_points: float
    win_rate: float
    current_monthly_rank: int | None = None
    best_monthly_rank: int | None = None


class RacingStats(BaseModel):
    race_count: int
    total_wins: int
    win_streak: int
    best_win_streak: int
    rating: float


class StreakStats(BaseModel):
    monthly_streak: int = 0
    lifetime_streak: int = 0
    longest_lifetime_streak: int = 0
    win_streak: int = 0
    best_win_streak: int = 0
    total_weeks_participated: int = 0


class UserStatsResponse(BaseModel):
    user_id: int
    xp: int
    level: int
    xp_for_next_level: int
    xp_to_next_level: int
    level_progress: float
    current_title: str | None = None
    achievements_unlocked: int
    achievements_total: int
    completion_percentage: float
    betting: BettingStats
    racing: RacingStats | None = None
    streaks: StreakStats


# --- Titles ---


class EquipTitleRequest(BaseModel):
    achievement_id: int


class TitleResponse(BaseModel):
    current_title: str | None = None


# --- XP ---


class XPHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    xp_amount: int
    source: str
    related_entity_id: str | None = None
    description: str | None = None
    earned_at: datetime


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total_xp: int


# --- Level rewards ---


class LevelRewardResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    level: int
    reward_type: str
    reward_data: dict = Field(default_factory=dict)
    description: str


class LevelRewardsResponse(BaseModel):
    rewards: list[LevelRewardResponse]


class UserLevelRewardsResponse(BaseModel):
    level: int
    unlocked: list[LevelRewardResponse]
    next_reward: LevelRewardResponse | None = None
    active_multiplier: float = 1.0


# --- Streak leaderboards ---


class StreakLeaderboardEntry(BaseModel):
    user_id: int
    display_name: str | None = None
    value: int


class StreakLeaderboardResponse(BaseModel):
    kind: str
    entries: list[StreakLeaderboardEntry]


# --- Level leaderboard ---


class LevelLeaderboardEntry(BaseModel):
    user_id: int
    display_name: str | None = None
    level: int
    xp: int


class LevelLeaderboardResponse(BaseModel):
    entries: list[LevelLeaderboardEntry]


# --- Daily bonus ---


class DailyBonusResponse(BaseModel):
    awarded: bool
    xp_awarded: int = 0
    total_xp: int
    level: int

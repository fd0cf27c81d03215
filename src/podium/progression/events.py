"""Outbound progression events published on Redis pub/sub.

Publishing is best-effort: a missing client is skipped and a failed
publish is logged, never raised, so the operation that produced the
event still commits.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel

logger = logging.getLogger(__name__)

CHANNEL_ACHIEVEMENT_UNLOCKED = "pubsub:achievement_unlocked"
CHANNEL_ACHIEVEMENT_REVOKED = "pubsub:achievement_revoked"
CHANNEL_LEVEL_UP = "pubsub:level_up"
CHANNEL_STREAK_RECORD = "pubsub:streak_record"
CHANNEL_REWARD_UNLOCKED = "pubsub:reward_unlocked"


class AchievementUnlocked(BaseModel):
    user_id: int
    key: str
    name: str
    rarity: str
    xp_reward: int
    unlocked_title: str | None = None
    unlocked_at: datetime
    is_temporary: bool = False
    times_earned: int = 1


class AchievementRevoked(BaseModel):
    user_id: int
    key: str
    reason: str


class LevelUp(BaseModel):
    user_id: int
    previous_level: int
    new_level: int
    total_xp: int


class StreakRecord(BaseModel):
    user_id: int
    kind: Literal["monthly", "lifetime", "win"]
    new_record: int
    previous_record: int


class RewardUnlocked(BaseModel):
    user_id: int
    level: int
    reward_type: str
    reward_data: dict[str, Any] = {}
    description: str


_CHANNELS: dict[type[BaseModel], str] = {
    AchievementUnlocked: CHANNEL_ACHIEVEMENT_UNLOCKED,
    AchievementRevoked: CHANNEL_ACHIEVEMENT_REVOKED,
    LevelUp: CHANNEL_LEVEL_UP,
    StreakRecord: CHANNEL_STREAK_RECORD,
    RewardUnlocked: CHANNEL_REWARD_UNLOCKED,
}


async def publish_event(redis: object, event: BaseModel) -> None:
    """Publish an event on its channel."""
    if redis is None:
        return
    channel = _CHANNELS[type(event)]
    try:
        await redis.publish(channel, event.model_dump_json())  # type: ignore[union-attr]
    except Exception:
        logger.warning("Failed to publish %s for user %s", channel, getattr(event, "user_id", "?"), exc_info=True)


# ---------------------------------------------------------------------------
# Inbound events (Redis Streams)
# ---------------------------------------------------------------------------


class ActivityFinalized(BaseModel):
    """A user's bet for a betting week has been settled."""

    user_id: int
    bet_id: int | None = None
    betting_week_id: int | None = None
    points_earned: float = 0.0
    correct_count: int = 0
    total_count: int = 0
    is_perfect: bool = False


class RaceResult(BaseModel):
    competitor_id: int
    finish_rank: int


class RaceRecorded(BaseModel):
    race_id: int | None = None
    results: list[RaceResult] = []

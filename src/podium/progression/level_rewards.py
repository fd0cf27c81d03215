"""Level reward table: titles, badges and XP multipliers unlocked by level."""

from __future__ import annotations

import logging
import math

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.db.models import LevelReward, User
from podium.db.upsert import upsert
from podium.progression.xp_service import get_user

logger = logging.getLogger(__name__)

TITLE = "TITLE"
BADGE = "BADGE"
AVATAR = "AVATAR"
XP_MULTIPLIER = "XP_MULTIPLIER"

LEVEL_REWARDS_CONFIG: list[dict] = [
    {"level": 5, "reward_type": TITLE, "reward_data": {"title": "Rookie"}, "description": 'Unlock the "Rookie" title'},
    {"level": 10, "reward_type": BADGE, "reward_data": {"badge_icon": "star"}, "description": "Unlock the Star badge"},
    {"level": 15, "reward_type": TITLE, "reward_data": {"title": "Pro"}, "description": 'Unlock the "Pro" title'},
    {"level": 20, "reward_type": XP_MULTIPLIER, "reward_data": {"multiplier": 1.1}, "description": "10% XP multiplier"},
    {"level": 25, "reward_type": TITLE, "reward_data": {"title": "Expert"}, "description": 'Unlock the "Expert" title'},
    {"level": 30, "reward_type": XP_MULTIPLIER, "reward_data": {"multiplier": 1.2}, "description": "20% XP multiplier"},
    {"level": 35, "reward_type": BADGE, "reward_data": {"badge_icon": "superstar"}, "description": "Unlock the Superstar badge"},
    {"level": 40, "reward_type": TITLE, "reward_data": {"title": "Master"}, "description": 'Unlock the "Master" title'},
    {"level": 50, "reward_type": XP_MULTIPLIER, "reward_data": {"multiplier": 1.5}, "description": "50% XP multiplier"},
    {"level": 60, "reward_type": TITLE, "reward_data": {"title": "Grandmaster"}, "description": 'Unlock the "Grandmaster" title'},
    {"level": 75, "reward_type": XP_MULTIPLIER, "reward_data": {"multiplier": 2.0}, "description": "100% XP multiplier (2x XP)"},
    {"level": 100, "reward_type": TITLE, "reward_data": {"title": "Legend"}, "description": 'Unlock the "Legend" title'},
]


async def seed_level_rewards(db: AsyncSession) -> int:
    """Upsert the reward table by level. Returns number of rows seeded."""
    for reward in LEVEL_REWARDS_CONFIG:
        await upsert(db, LevelReward, reward, ["level"])
    await db.commit()
    logger.info("Seeded %d level rewards", len(LEVEL_REWARDS_CONFIG))
    return len(LEVEL_REWARDS_CONFIG)


async def get_all_rewards(db: AsyncSession) -> list[LevelReward]:
    result = await db.execute(select(LevelReward).order_by(LevelReward.level))
    return list(result.scalars().all())


async def get_unlocked_rewards(db: AsyncSession, user_id: int) -> list[LevelReward]:
    """Rewards at or below the user's level, lowest first."""
    user = await get_user(db, user_id)
    result = await db.execute(
        select(LevelReward).where(LevelReward.level <= user.level).order_by(LevelReward.level)
    )
    return list(result.scalars().all())


async def get_next_reward(db: AsyncSession, user_id: int) -> LevelReward | None:
    user = await get_user(db, user_id)
    result = await db.execute(
        select(LevelReward).where(LevelReward.level > user.level).order_by(LevelReward.level).limit(1)
    )
    return result.scalar_one_or_none()


async def get_active_xp_multiplier(db: AsyncSession, user_id: int) -> float:
    """Multiplier of the highest unlocked XP_MULTIPLIER reward, 1.0 if none or unknown user."""
    user = await db.get(User, user_id)
    if user is None:
        return 1.0
    result = await db.execute(
        select(LevelReward)
        .where(LevelReward.level <= user.level, LevelReward.reward_type == XP_MULTIPLIER)
        .order_by(LevelReward.level.desc())
        .limit(1)
    )
    reward = result.scalar_one_or_none()
    if reward is None:
        return 1.0
    return float(reward.reward_data.get("multiplier") or 1.0)


async def apply_xp_multiplier(db: AsyncSession, user_id: int, base_xp: int) -> int:
    """Scale ``base_xp`` by the user's active multiplier, rounded down."""
    return math.floor(base_xp * await get_active_xp_multiplier(db, user_id))

"""XP ledger, level recomputation and the non-recursive level-up bonus."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.config import get_settings
from podium.db.models import LevelReward, User, XPLedger
from podium.errors import ProgressionValidationError, UserNotFoundError
from podium.progression.events import LevelUp, RewardUnlocked, publish_event
from podium.progression.levels import compute_level, level_info

logger = logging.getLogger(__name__)


class XPSource(str, Enum):
    BET_PLACED = "BET_PLACED"
    CORRECT_PICK = "CORRECT_PICK"
    PERFECT_PODIUM = "PERFECT_PODIUM"
    WEEKLY_PARTICIPATION = "WEEKLY_PARTICIPATION"
    ACHIEVEMENT_COMMON = "ACHIEVEMENT_COMMON"
    ACHIEVEMENT_RARE = "ACHIEVEMENT_RARE"
    ACHIEVEMENT_EPIC = "ACHIEVEMENT_EPIC"
    ACHIEVEMENT_LEGENDARY = "ACHIEVEMENT_LEGENDARY"
    LEVEL_UP_BONUS = "LEVEL_UP_BONUS"
    DAILY_LOGIN_BONUS = "DAILY_LOGIN_BONUS"
    DAILY_FIRST_BET_BONUS = "DAILY_FIRST_BET_BONUS"
    WEEKLY_STREAK_BONUS = "WEEKLY_STREAK_BONUS"
    COMEBACK_BONUS = "COMEBACK_BONUS"
    HIGH_ODDS_BONUS = "HIGH_ODDS_BONUS"


# Default amount per source. HIGH_ODDS_BONUS is sized by the caller.
XP_SOURCES: dict[XPSource, int] = {
    XPSource.BET_PLACED: 10,
    XPSource.CORRECT_PICK: 20,
    XPSource.PERFECT_PODIUM: 100,
    XPSource.WEEKLY_PARTICIPATION: 50,
    XPSource.ACHIEVEMENT_COMMON: 10,
    XPSource.ACHIEVEMENT_RARE: 50,
    XPSource.ACHIEVEMENT_EPIC: 250,
    XPSource.ACHIEVEMENT_LEGENDARY: 500,
    XPSource.LEVEL_UP_BONUS: 100,
    XPSource.DAILY_LOGIN_BONUS: 5,
    XPSource.DAILY_FIRST_BET_BONUS: 10,
    XPSource.WEEKLY_STREAK_BONUS: 50,
    XPSource.COMEBACK_BONUS: 25,
    XPSource.HIGH_ODDS_BONUS: 0,
}


def achievement_source(rarity: str) -> XPSource:
    """Map an achievement rarity to its XP source tag."""
    try:
        return XPSource(f"ACHIEVEMENT_{rarity.upper()}")
    except ValueError:
        raise ProgressionValidationError(f"Unknown rarity: {rarity}") from None


def achievement_xp(rarity: str) -> int:
    """XP granted for unlocking an achievement of the given rarity."""
    return XP_SOURCES[achievement_source(rarity)]


async def get_user(db: AsyncSession, user_id: int) -> User:
    """Load a user or raise UserNotFoundError."""
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


async def _emit_level_rewards(
    db: AsyncSession,
    redis: object,
    user_id: int,
    previous_level: int,
    new_level: int,
) -> None:
    """Publish reward_unlocked for every reward level crossed by this level-up."""
    result = await db.execute(
        select(LevelReward)
        .where(LevelReward.level > previous_level, LevelReward.level <= new_level)
        .order_by(LevelReward.level)
    )
    for reward in result.scalars():
        logger.info("User %s unlocked level %s reward: %s", user_id, reward.level, reward.description)
        await publish_event(
            redis,
            RewardUnlocked(
                user_id=user_id,
                level=reward.level,
                reward_type=reward.reward_type,
                reward_data=reward.reward_data or {},
                description=reward.description,
            ),
        )


async def add_xp(
    db: AsyncSession,
    redis: object,
    user_id: int,
    amount: int,
    source: XPSource,
    related_entity_id: str | None = None,
    description: str | None = None,
) -> XPLedger:
    """Append a ledger entry and update the user's denormalized XP and level.

    1. Insert into xp_ledger
    2. Update users.xp
    3. Recompute level from users.xp
    4. If the level went up, emit level_up, reward_unlocked for each reward
       level crossed, and grant the level-up bonus

    The bonus is itself granted through add_xp with source LEVEL_UP_BONUS,
    which never triggers another bonus. A bonus that crosses a further
    level still emits its own level_up event.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ProgressionValidationError(f"XP amount must be an integer, got {amount!r}")
    source = XPSource(source)

    settings = get_settings()
    user = await get_user(db, user_id)
    now = datetime.now(timezone.utc)

    entry = XPLedger(
        user_id=user_id,
        xp_amount=amount,
        source=source.value,
        related_entity_id=related_entity_id,
        description=description,
        earned_at=now,
    )
    db.add(entry)

    previous_level = user.level
    user.xp += amount
    new_level = compute_level(user.xp, settings.level_base_xp)
    # Stored level never goes down; a negative entry leaves it in place
    if new_level > previous_level:
        user.level = new_level
    await db.flush()

    if new_level > previous_level:
        logger.info("User %s levelled up %s -> %s (%s XP)", user_id, previous_level, user.level, user.xp)
        await publish_event(
            redis,
            LevelUp(
                user_id=user_id,
                previous_level=previous_level,
                new_level=user.level,
                total_xp=user.xp,
            ),
        )
        await _emit_level_rewards(db, redis, user_id, previous_level, new_level)
        if source is not XPSource.LEVEL_UP_BONUS:
            await add_xp(
                db,
                redis,
                user_id,
                settings.level_up_bonus_xp,
                XPSource.LEVEL_UP_BONUS,
                related_entity_id=f"level:{user.level}",
                description=f"Level {user.level} reached",
            )

    return entry


async def award_xp(
    db: AsyncSession,
    redis: object,
    user_id: int,
    source: XPSource,
    custom_amount: int | None = None,
    related_entity_id: str | None = None,
    description: str | None = None,
) -> XPLedger:
    """Grant the table amount for ``source`` (or ``custom_amount``)."""
    source = XPSource(source)
    amount = custom_amount if custom_amount is not None else XP_SOURCES[source]
    return await add_xp(db, redis, user_id, amount, source, related_entity_id, description)


async def get_user_level_info(db: AsyncSession, user_id: int) -> dict:
    """Level, XP thresholds and progress for one user."""
    user = await get_user(db, user_id)
    return level_info(user.xp, get_settings().level_base_xp)


async def get_xp_history(db: AsyncSession, user_id: int, limit: int = 50) -> list[XPLedger]:
    """Most recent ledger entries, newest first."""
    if limit < 1 or limit > 200:
        raise ProgressionValidationError("limit must be between 1 and 200")
    await get_user(db, user_id)
    result = await db.execute(
        select(XPLedger)
        .where(XPLedger.user_id == user_id)
        .order_by(desc(XPLedger.earned_at), desc(XPLedger.id))
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_top_users_by_level(db: AsyncSession, limit: int = 10) -> list[User]:
    """Users ordered by level then XP, highest first."""
    result = await db.execute(
        select(User).order_by(desc(User.level), desc(User.xp), User.id).limit(limit)
    )
    return list(result.scalars().all())

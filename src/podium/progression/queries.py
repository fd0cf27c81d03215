"""Read-side operations behind the progression API."""

from __future__ import annotations

import logging

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.config import get_settings
from podium.db.models import AchievementDefinition, User, UserAchievement
from podium.errors import AchievementNotFoundError, ProgressionValidationError
from podium.progression import level_rewards
from podium.progression.bonus_service import check_daily_login_bonus
from podium.progression.conditions import condition_progress
from podium.progression.levels import level_progress, xp_for_next_level, xp_to_next_level
from podium.progression.schemas import (
    AchievementListResponse,
    AchievementResponse,
    BettingStats,
    DailyBonusResponse,
    LevelLeaderboardEntry,
    LevelLeaderboardResponse,
    LevelRewardResponse,
    RacingStats,
    StreakLeaderboardEntry,
    StreakLeaderboardResponse,
    StreakStats,
    UserAchievementResponse,
    UserAchievementsResponse,
    UserLevelRewardsResponse,
    UserStatsResponse,
)
from podium.progression.stats_service import build_user_stats
from podium.progression.streak_service import (
    get_top_lifetime_streaks,
    get_top_monthly_streaks,
    get_top_win_streaks,
    get_user_streak,
)
from podium.progression.xp_service import XP_SOURCES, XPSource, get_top_users_by_level, get_user

logger = logging.getLogger(__name__)

STREAK_LEADERBOARDS = {
    "monthly": (get_top_monthly_streaks, "current_monthly_streak"),
    "lifetime": (get_top_lifetime_streaks, "longest_lifetime_streak"),
    "win": (get_top_win_streaks, "best_win_streak"),
}


async def _active_records(db: AsyncSession, user_id: int) -> dict[int, UserAchievement]:
    result = await db.execute(
        select(UserAchievement).where(
            UserAchievement.user_id == user_id,
            UserAchievement.revoked_at.is_(None),
        )
    )
    return {r.achievement_id: r for r in result.scalars()}


async def list_achievements(
    db: AsyncSession,
    user_id: int | None = None,
    category: str | None = None,
    rarity: str | None = None,
    domain: str | None = None,
    unlocked_only: bool = False,
    locked_only: bool = False,
) -> AchievementListResponse:
    """Catalog, optionally filtered, annotated with the caller's unlock state and progress."""
    if unlocked_only and locked_only:
        raise ProgressionValidationError("unlocked_only and locked_only are mutually exclusive")
    if (unlocked_only or locked_only) and user_id is None:
        raise ProgressionValidationError("Lock-state filters need a user")

    stmt = select(AchievementDefinition).order_by(AchievementDefinition.sort_order, AchievementDefinition.id)
    if category:
        stmt = stmt.where(AchievementDefinition.category == category.upper())
    if rarity:
        stmt = stmt.where(AchievementDefinition.rarity == rarity.upper())
    if domain:
        stmt = stmt.where(AchievementDefinition.domain == domain.upper())
    definitions = list((await db.execute(stmt)).scalars().all())

    records: dict[int, UserAchievement] = {}
    snapshot = None
    if user_id is not None:
        await get_user(db, user_id)
        records = await _active_records(db, user_id)
        snapshot = await build_user_stats(db, user_id)

    items: list[AchievementResponse] = []
    for d in definitions:
        record = records.get(d.id)
        if unlocked_only and record is None:
            continue
        if locked_only and record is not None:
            continue
        if record is not None:
            progress = 100.0
        elif snapshot is not None:
            progress = round(condition_progress(d.condition, snapshot), 2)
        else:
            progress = 0.0
        items.append(AchievementResponse(
            id=d.id,
            key=d.key,
            name=d.name,
            description=d.description,
            category=d.category,
            rarity=d.rarity,
            icon=d.icon,
            xp_reward=d.xp_reward,
            unlocks_title=d.unlocks_title,
            domain=d.domain,
            chain_name=d.chain_name,
            tier_level=d.tier_level,
            prerequisite_key=d.prerequisite_key,
            is_temporary=d.is_temporary,
            can_be_lost=d.can_be_lost,
            is_unlocked=record is not None,
            unlocked_at=record.unlocked_at if record else None,
            times_earned=record.times_earned if record else 0,
            progress=progress,
        ))

    return AchievementListResponse(
        achievements=items,
        total=len(items),
        unlocked=sum(1 for i in items if i.is_unlocked),
    )


async def get_my_achievements(db: AsyncSession, user_id: int) -> UserAchievementsResponse:
    """Active achievements of a user, newest first."""
    await get_user(db, user_id)
    result = await db.execute(
        select(UserAchievement, AchievementDefinition)
        .join(AchievementDefinition, AchievementDefinition.id == UserAchievement.achievement_id)
        .where(UserAchievement.user_id == user_id, UserAchievement.revoked_at.is_(None))
        .order_by(desc(UserAchievement.unlocked_at), desc(UserAchievement.id))
    )
    items = [
        UserAchievementResponse(
            key=d.key,
            name=d.name,
            description=d.description,
            category=d.category,
            rarity=d.rarity,
            icon=d.icon,
            unlocks_title=d.unlocks_title,
            is_temporary=d.is_temporary,
            unlocked_at=r.unlocked_at,
            times_earned=r.times_earned,
        )
        for r, d in result.tuples()
    ]
    return UserAchievementsResponse(achievements=items, total=len(items))


async def get_user_stats(db: AsyncSession, user_id: int) -> UserStatsResponse:
    """Aggregated progression figures for a profile page."""
    user = await get_user(db, user_id)
    snapshot = await build_user_stats(db, user_id)
    streak = await get_user_streak(db, user_id)
    base = get_settings().level_base_xp

    total = (await db.execute(select(func.count(AchievementDefinition.id)))).scalar_one()
    unlocked = len(await _active_records(db, user_id))

    racing = None
    if snapshot.is_competitor:
        racing = RacingStats(
            race_count=snapshot.competitor_race_count,
            total_wins=snapshot.competitor_total_wins,
            win_streak=snapshot.competitor_win_streak,
            best_win_streak=snapshot.competitor_best_win_streak,
            rating=snapshot.competitor_rating,
        )

    return UserStatsResponse(
        user_id=user_id,
        xp=user.xp,
        level=user.level,
        xp_for_next_level=xp_for_next_level(user.xp, base),
        xp_to_next_level=xp_to_next_level(user.xp, base),
        level_progress=round(level_progress(user.xp, base), 2),
        current_title=user.current_title,
        achievements_unlocked=unlocked,
        achievements_total=total,
        completion_percentage=round(unlocked / total * 100, 2) if total else 0.0,
        betting=BettingStats(
            bets_placed=snapshot.bets_placed,
            bets_won=snapshot.bets_won,
            perfect_bets=snapshot.perfect_bets,
            total_points=snapshot.total_points,
            win_rate=round(snapshot.win_rate, 2),
            current_monthly_rank=snapshot.current_monthly_rank,
            best_monthly_rank=snapshot.best_monthly_rank,
        ),
        racing=racing,
        streaks=StreakStats(
            monthly_streak=snapshot.monthly_streak,
            lifetime_streak=snapshot.lifetime_streak,
            longest_lifetime_streak=snapshot.longest_lifetime_streak,
            win_streak=snapshot.consecutive_wins,
            best_win_streak=snapshot.best_win_streak,
            total_weeks_participated=streak.total_weeks_participated if streak else 0,
        ),
    )


async def equip_title(db: AsyncSession, user_id: int, achievement_id: int) -> str:
    """Set the user's displayed title from an actively unlocked achievement."""
    user = await get_user(db, user_id)
    definition = await db.get(AchievementDefinition, achievement_id)
    if definition is None:
        raise AchievementNotFoundError(achievement_id)
    if not definition.unlocks_title:
        raise ProgressionValidationError(f"Achievement {definition.key} does not unlock a title")

    records = await _active_records(db, user_id)
    if achievement_id not in records:
        raise ProgressionValidationError(f"Achievement {definition.key} is not unlocked")

    user.current_title = definition.unlocks_title
    await db.commit()
    logger.info("User %s equipped title %r", user_id, user.current_title)
    return user.current_title


async def unequip_title(db: AsyncSession, user_id: int) -> None:
    user = await get_user(db, user_id)
    user.current_title = None
    await db.commit()


async def get_user_level_rewards(db: AsyncSession, user_id: int) -> UserLevelRewardsResponse:
    user = await get_user(db, user_id)
    unlocked = await level_rewards.get_unlocked_rewards(db, user_id)
    next_reward = await level_rewards.get_next_reward(db, user_id)
    return UserLevelRewardsResponse(
        level=user.level,
        unlocked=[LevelRewardResponse.model_validate(r) for r in unlocked],
        next_reward=LevelRewardResponse.model_validate(next_reward) if next_reward else None,
        active_multiplier=await level_rewards.get_active_xp_multiplier(db, user_id),
    )


async def get_streak_leaderboard(db: AsyncSession, kind: str, limit: int = 10) -> StreakLeaderboardResponse:
    if kind not in STREAK_LEADERBOARDS:
        raise ProgressionValidationError(f"Unknown streak leaderboard: {kind}")
    fetch, column = STREAK_LEADERBOARDS[kind]
    streaks = await fetch(db, limit)

    names: dict[int, str | None] = {}
    if streaks:
        result = await db.execute(
            select(User.id, User.display_name).where(User.id.in_([s.user_id for s in streaks]))
        )
        names = dict(result.all())

    return StreakLeaderboardResponse(
        kind=kind,
        entries=[
            StreakLeaderboardEntry(user_id=s.user_id, display_name=names.get(s.user_id), value=getattr(s, column))
            for s in streaks
        ],
    )


async def get_level_leaderboard(db: AsyncSession, limit: int = 10) -> LevelLeaderboardResponse:
    users = await get_top_users_by_level(db, limit)
    return LevelLeaderboardResponse(
        entries=[
            LevelLeaderboardEntry(user_id=u.id, display_name=u.display_name, level=u.level, xp=u.xp) for u in users
        ]
    )


async def claim_daily_login_bonus(db: AsyncSession, redis: object, user_id: int) -> DailyBonusResponse:
    """Grant today's login bonus if it has not been claimed yet."""
    user = await get_user(db, user_id)
    awarded = await check_daily_login_bonus(db, redis, user_id)
    await db.commit()
    return DailyBonusResponse(
        awarded=awarded,
        xp_awarded=XP_SOURCES[XPSource.DAILY_LOGIN_BONUS] if awarded else 0,
        total_xp=user.xp,
        level=user.level,
    )

"""Progression API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from podium.config import get_settings
from podium.dependencies import get_current_user_id, get_db, get_optional_user_id, get_publisher_dep
from podium.progression import level_rewards, queries
from podium.progression.schemas import (
    AchievementListResponse,
    DailyBonusResponse,
    EquipTitleRequest,
    LevelLeaderboardResponse,
    LevelRewardResponse,
    LevelRewardsResponse,
    StreakLeaderboardResponse,
    TitleResponse,
    UserAchievementsResponse,
    UserLevelRewardsResponse,
    UserStatsResponse,
    XPHistoryEntry,
    XPHistoryResponse,
)
from podium.progression.xp_service import get_user, get_xp_history

router = APIRouter(prefix="/api/v1/achievements", tags=["Achievements"])


@router.get("", response_model=AchievementListResponse)
async def list_achievements(
    category: str | None = Query(default=None),
    rarity: str | None = Query(default=None),
    domain: str | None = Query(default=None),
    unlocked_only: bool = Query(default=False),
    locked_only: bool = Query(default=False),
    user_id: int | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Achievement catalog with unlock state and progress for the caller."""
    return await queries.list_achievements(
        db,
        user_id=user_id,
        category=category,
        rarity=rarity,
        domain=domain,
        unlocked_only=unlocked_only,
        locked_only=locked_only,
    )


@router.get("/me", response_model=UserAchievementsResponse)
async def my_achievements(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await queries.get_my_achievements(db, user_id)


@router.get("/me/stats", response_model=UserStatsResponse)
async def my_stats(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await queries.get_user_stats(db, user_id)


@router.get("/users/{target_user_id}/stats", response_model=UserStatsResponse)
async def user_stats(target_user_id: int, db: AsyncSession = Depends(get_db)):
    return await queries.get_user_stats(db, target_user_id)


@router.post("/me/title", response_model=TitleResponse)
async def equip_title(
    body: EquipTitleRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Display the title unlocked by one of the caller's achievements."""
    title = await queries.equip_title(db, user_id, body.achievement_id)
    return TitleResponse(current_title=title)


@router.delete("/me/title", response_model=TitleResponse)
async def unequip_title(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await queries.unequip_title(db, user_id)
    return TitleResponse(current_title=None)


@router.get("/me/xp-history", response_model=XPHistoryResponse)
async def xp_history(
    limit: int | None = Query(default=None, ge=1, le=200),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Most recent XP ledger entries."""
    entries = await get_xp_history(db, user_id, limit or get_settings().xp_history_default_limit)
    user = await get_user(db, user_id)
    return XPHistoryResponse(
        entries=[XPHistoryEntry.model_validate(e) for e in entries],
        total_xp=user.xp,
    )


@router.get("/level-rewards", response_model=LevelRewardsResponse)
async def list_level_rewards(db: AsyncSession = Depends(get_db)):
    rewards = await level_rewards.get_all_rewards(db)
    return LevelRewardsResponse(rewards=[LevelRewardResponse.model_validate(r) for r in rewards])


@router.get("/me/level-rewards", response_model=UserLevelRewardsResponse)
async def my_level_rewards(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Unlocked rewards, the next one and the active XP multiplier."""
    return await queries.get_user_level_rewards(db, user_id)


@router.get("/streaks/{kind}", response_model=StreakLeaderboardResponse)
async def streak_leaderboard(
    kind: str,
    limit: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await queries.get_streak_leaderboard(db, kind, limit)


@router.get("/leaderboard/levels", response_model=LevelLeaderboardResponse)
async def level_leaderboard(
    limit: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await queries.get_level_leaderboard(db, limit)


@router.post("/me/daily-bonus", response_model=DailyBonusResponse)
async def claim_daily_bonus(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_publisher_dep),
):
    """Claim today's login bonus. Repeat claims on the same UTC day award nothing."""
    return await queries.claim_daily_login_bonus(db, redis, user_id)

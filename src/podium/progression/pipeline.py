"""Activity pipeline: wires inbound events to the progression components.

Order for a finalized activity: participation streak, win streak,
activity XP, daily bonuses, permanent achievements, temporary
achievements, commit. Daily bonuses follow the first delivery of a bet only.
"""

from __future__ import annotations

import logging

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.db.models import Bet, BetPick, XPLedger
from podium.progression.achievement_engine import AchievementEngine, AchievementUnlockResult
from podium.progression.bonus_service import award_daily_bonuses, high_odds_xp
from podium.progression.events import ActivityFinalized, RaceRecorded
from podium.progression.stats_service import COMEBACK_LOSS_RUN, is_win
from podium.progression.streak_service import update_participation_streak, update_win_streak
from podium.progression.temporary_service import TemporaryAchievementController
from podium.progression.xp_service import XPSource, award_xp

logger = logging.getLogger(__name__)


async def _update_streaks(db: AsyncSession, redis: object, event: ActivityFinalized) -> None:
    if event.betting_week_id is None:
        return
    try:
        async with db.begin_nested():
            await update_participation_streak(db, redis, event.user_id, event.betting_week_id)
    except Exception:
        logger.exception("Failed to update streak for user %s", event.user_id)
    try:
        async with db.begin_nested():
            await update_win_streak(db, redis, event.user_id, event.betting_week_id, event.points_earned > 0)
    except Exception:
        logger.exception("Failed to update win streak for user %s", event.user_id)


async def _already_rewarded(db: AsyncSession, user_id: int, ref: str) -> bool:
    result = await db.execute(
        select(XPLedger.id).where(
            XPLedger.user_id == user_id,
            XPLedger.source == XPSource.BET_PLACED.value,
            XPLedger.related_entity_id == ref,
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def _is_comeback(db: AsyncSession, user_id: int, bet_id: int) -> bool:
    """True when the three previous finalized bets were all losses."""
    result = await db.execute(
        select(Bet)
        .where(Bet.user_id == user_id, Bet.is_finalized.is_(True), Bet.id != bet_id)
        .order_by(desc(Bet.created_at), desc(Bet.id))
        .limit(COMEBACK_LOSS_RUN)
    )
    previous = list(result.scalars().all())
    return len(previous) == COMEBACK_LOSS_RUN and not any(is_win(b) for b in previous)


async def _bet_picks(db: AsyncSession, bet_id: int) -> list[BetPick]:
    result = await db.execute(select(BetPick).where(BetPick.bet_id == bet_id))
    return list(result.scalars().all())


async def award_activity_xp(db: AsyncSession, redis: object, event: ActivityFinalized) -> int:
    """Grant the per-bet XP. A bet already rewarded is skipped. Returns XP granted."""
    ref = f"bet:{event.bet_id}" if event.bet_id is not None else None
    if ref is not None and await _already_rewarded(db, event.user_id, ref):
        logger.info("Activity XP for %s already granted to user %s", ref, event.user_id)
        return 0

    entries = [await award_xp(db, redis, event.user_id, XPSource.BET_PLACED, related_entity_id=ref)]
    for _ in range(event.correct_count):
        entries.append(await award_xp(db, redis, event.user_id, XPSource.CORRECT_PICK, related_entity_id=ref))
    if event.is_perfect:
        entries.append(await award_xp(db, redis, event.user_id, XPSource.PERFECT_PODIUM, related_entity_id=ref))
    entries.append(await award_xp(db, redis, event.user_id, XPSource.WEEKLY_PARTICIPATION, related_entity_id=ref))

    if event.bet_id is None:
        return sum(e.xp_amount for e in entries)

    bonus = high_odds_xp(await _bet_picks(db, event.bet_id))
    if bonus > 0:
        entries.append(
            await award_xp(
                db, redis, event.user_id, XPSource.HIGH_ODDS_BONUS,
                custom_amount=bonus,
                related_entity_id=ref,
                description=f"High odds bonus ({bonus} XP)",
            )
        )
    # Same win rule as the win streak and the comeback_bets metric
    if event.points_earned > 0 and await _is_comeback(db, event.user_id, event.bet_id):
        entries.append(
            await award_xp(
                db, redis, event.user_id, XPSource.COMEBACK_BONUS,
                related_entity_id=ref,
                description=f"Comeback bonus (won after {COMEBACK_LOSS_RUN} consecutive losses)",
            )
        )
    return sum(e.xp_amount for e in entries)


async def process_activity_finalized(
    db: AsyncSession,
    redis: object,
    event: ActivityFinalized,
) -> list[AchievementUnlockResult]:
    """Run the full pipeline for one finalized activity and commit."""
    await _update_streaks(db, redis, event)
    if await award_activity_xp(db, redis, event):
        await award_daily_bonuses(db, redis, event.user_id)

    unlocked = await AchievementEngine(db, redis).handle_activity_finalized(event)
    await TemporaryAchievementController(db, redis).recompute_for_user(event.user_id)

    await db.commit()
    return unlocked


async def process_race_recorded(
    db: AsyncSession,
    redis: object,
    event: RaceRecorded,
) -> dict[int, list[AchievementUnlockResult]]:
    """Re-check racing achievements for every linked user and commit."""
    unlocked = await AchievementEngine(db, redis).handle_race_recorded(event)
    await db.commit()
    return unlocked

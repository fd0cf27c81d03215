"""Streak tracking: weekly participation and weekly win streaks.

Both streaks advance on ISO calendar weeks of the betting week's start
date. Each keeps its own "last processed week" anchor so a redelivered
event for the same week is a no-op.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from podium.db.models import BettingWeek, UserStreak
from podium.errors import BettingWeekNotFoundError
from podium.progression.events import StreakRecord, publish_event

logger = logging.getLogger(__name__)


def iso_week_parts(dt: datetime | date) -> tuple[int, int]:
    """Return (iso_week, iso_year) for dt."""
    iso = dt.isocalendar()
    return iso.week, iso.year


def get_week_iso(dt: datetime | date) -> str:
    """ISO week label such as "2026-W09", keyed on the ISO year."""
    week, year = iso_week_parts(dt)
    return f"{year}-W{week:02d}"


def is_consecutive_week(
    last_week: int | None,
    last_year: int | None,
    week: int,
    year: int,
) -> bool:
    """True when (week, year) is exactly one ISO week after (last_week, last_year)."""
    if last_week is None or last_year is None:
        return False
    if last_year == year and week == last_week + 1:
        return True
    # Year boundary: ISO week 52 or 53 followed by week 1
    return last_year == year - 1 and last_week >= 52 and week == 1


async def get_or_create_streak(db: AsyncSession, user_id: int) -> UserStreak:
    """Get or create the streak row for a user."""
    result = await db.execute(select(UserStreak).where(UserStreak.user_id == user_id))
    streak = result.scalar_one_or_none()
    if streak is None:
        streak = UserStreak(
            user_id=user_id,
            current_monthly_streak=0,
            current_lifetime_streak=0,
            longest_lifetime_streak=0,
            total_weeks_participated=0,
            current_win_streak=0,
            best_win_streak=0,
            updated_at=datetime.now(timezone.utc),
        )
        db.add(streak)
        await db.flush()
    return streak


async def _resolve_week(db: AsyncSession, betting_week_id: int) -> tuple[int, int]:
    week = await db.get(BettingWeek, betting_week_id)
    if week is None:
        raise BettingWeekNotFoundError(betting_week_id)
    return iso_week_parts(week.start_date)


async def update_participation_streak(
    db: AsyncSession,
    redis: object,
    user_id: int,
    betting_week_id: int,
) -> UserStreak:
    """Record participation in a betting week.

    Consecutive week: both counters +1. Same week: no-op. Anything else
    (first bet, gap): both counters restart at 1 with fresh start stamps.
    """
    week, year = await _resolve_week(db, betting_week_id)
    streak = await get_or_create_streak(db, user_id)

    if streak.last_bet_week_number == week and streak.last_bet_year == year:
        logger.debug("User %s: participation already recorded for %s-W%02d", user_id, year, week)
        return streak

    now = datetime.now(timezone.utc)
    if is_consecutive_week(streak.last_bet_week_number, streak.last_bet_year, week, year):
        streak.current_monthly_streak += 1
        streak.current_lifetime_streak += 1
        if streak.monthly_streak_started_at is None:
            streak.monthly_streak_started_at = now
        logger.info(
            "User %s: streak continued (monthly %s, lifetime %s)",
            user_id, streak.current_monthly_streak, streak.current_lifetime_streak,
        )
    else:
        if streak.current_lifetime_streak > 0:
            logger.info("User %s: streak broken (was %s)", user_id, streak.current_lifetime_streak)
        streak.current_monthly_streak = 1
        streak.current_lifetime_streak = 1
        streak.monthly_streak_started_at = now
        streak.lifetime_streak_started_at = now

    previous_record = streak.longest_lifetime_streak
    new_record = streak.current_lifetime_streak > previous_record
    if new_record:
        streak.longest_lifetime_streak = streak.current_lifetime_streak

    streak.last_bet_week_number = week
    streak.last_bet_year = year
    streak.total_weeks_participated += 1
    streak.updated_at = now
    await db.flush()

    if new_record:
        logger.info("User %s: new lifetime streak record %s -> %s", user_id, previous_record, streak.longest_lifetime_streak)
        await publish_event(
            redis,
            StreakRecord(
                user_id=user_id,
                kind="lifetime",
                new_record=streak.longest_lifetime_streak,
                previous_record=previous_record,
            ),
        )
    return streak


async def update_win_streak(
    db: AsyncSession,
    redis: object,
    user_id: int,
    betting_week_id: int,
    is_win: bool,
) -> UserStreak:
    """Apply a week's win/loss outcome once.

    A win extends the streak when it lands the week after the previous
    anchor, otherwise restarts at 1. A loss resets to 0. Both move the anchor.
    """
    week, year = await _resolve_week(db, betting_week_id)
    streak = await get_or_create_streak(db, user_id)

    if streak.last_win_week_number == week and streak.last_win_year == year:
        logger.debug("User %s: win streak already processed for %s-W%02d", user_id, year, week)
        return streak

    previous_record = streak.best_win_streak
    new_record = False
    if is_win:
        if is_consecutive_week(streak.last_win_week_number, streak.last_win_year, week, year):
            streak.current_win_streak += 1
        else:
            streak.current_win_streak = 1
        if streak.current_win_streak > streak.best_win_streak:
            streak.best_win_streak = streak.current_win_streak
            new_record = True
    else:
        if streak.current_win_streak > 0:
            logger.info("User %s: win streak broken (was %s)", user_id, streak.current_win_streak)
        streak.current_win_streak = 0

    streak.last_win_week_number = week
    streak.last_win_year = year
    streak.updated_at = datetime.now(timezone.utc)
    await db.flush()

    if new_record:
        logger.info("User %s: new win streak record %s -> %s", user_id, previous_record, streak.best_win_streak)
        await publish_event(
            redis,
            StreakRecord(
                user_id=user_id,
                kind="win",
                new_record=streak.best_win_streak,
                previous_record=previous_record,
            ),
        )
    return streak


async def reset_monthly_streaks(db: AsyncSession) -> int:
    """Zero every monthly counter. Run on the 1st of the month.

    The participation anchor is left alone so the lifetime streak carries
    across the month boundary.
    """
    result = await db.execute(
        update(UserStreak).values(
            current_monthly_streak=0,
            monthly_streak_started_at=None,
            updated_at=datetime.now(timezone.utc),
        )
    )
    await db.flush()
    affected = result.rowcount or 0
    logger.info("Monthly streaks reset for %d users", affected)
    return affected


async def get_user_streak(db: AsyncSession, user_id: int) -> UserStreak | None:
    result = await db.execute(select(UserStreak).where(UserStreak.user_id == user_id))
    return result.scalar_one_or_none()


async def get_top_monthly_streaks(db: AsyncSession, limit: int = 10) -> list[UserStreak]:
    result = await db.execute(
        select(UserStreak)
        .where(UserStreak.current_monthly_streak > 0)
        .order_by(desc(UserStreak.current_monthly_streak), UserStreak.user_id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_top_lifetime_streaks(db: AsyncSession, limit: int = 10) -> list[UserStreak]:
    result = await db.execute(
        select(UserStreak)
        .where(UserStreak.longest_lifetime_streak > 0)
        .order_by(desc(UserStreak.longest_lifetime_streak), UserStreak.user_id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_top_win_streaks(db: AsyncSession, limit: int = 10) -> list[UserStreak]:
    result = await db.execute(
        select(UserStreak)
        .where(UserStreak.best_win_streak > 0)
        .order_by(desc(UserStreak.best_win_streak), UserStreak.user_id)
        .limit(limit)
    )
    return list(result.scalars().all())

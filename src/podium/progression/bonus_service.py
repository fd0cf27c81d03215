"""Daily, weekly and high-odds XP bonuses.

Periodic bonuses are granted at most once per period. The ledger row of a
bonus carries its period in ``related_entity_id`` (``day:2026-10-19``,
``week:2026-W42``) and is the only record that it was paid. Days are UTC.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.db.models import BetPick, XPLedger
from podium.progression.stats_service import as_utc
from podium.progression.streak_service import get_week_iso
from podium.progression.xp_service import XPSource, award_xp

logger = logging.getLogger(__name__)

HIGH_ODDS_MIN_ODD = 5.0
HIGH_ODDS_XP_PER_ODD = 5
HIGH_ODDS_XP_CAP = 200
WEEKLY_STREAK_DAYS = 5


def high_odds_xp(picks: Iterable[BetPick]) -> int:
    """(odd - 5) x 5 XP for each correct pick at odds 5 or more, capped at 200 per bet."""
    bonus = sum(
        math.floor((p.odd_at_bet - HIGH_ODDS_MIN_ODD) * HIGH_ODDS_XP_PER_ODD)
        for p in picks
        if p.is_correct and p.odd_at_bet >= HIGH_ODDS_MIN_ODD
    )
    return min(bonus, HIGH_ODDS_XP_CAP)


def day_ref(day: date) -> str:
    return f"day:{day.isoformat()}"


def week_ref(day: date) -> str:
    return f"week:{get_week_iso(day)}"


def _today(now: datetime | None) -> date:
    return as_utc(now or datetime.now(timezone.utc)).date()


async def _paid_refs(db: AsyncSession, user_id: int, source: XPSource, refs: list[str]) -> set[str]:
    result = await db.execute(
        select(XPLedger.related_entity_id).where(
            XPLedger.user_id == user_id,
            XPLedger.source == source.value,
            XPLedger.related_entity_id.in_(refs),
        )
    )
    return set(result.scalars().all())


async def _grant_once(
    db: AsyncSession,
    redis: object,
    user_id: int,
    source: XPSource,
    ref: str,
    description: str,
) -> bool:
    if await _paid_refs(db, user_id, source, [ref]):
        return False
    await award_xp(db, redis, user_id, source, related_entity_id=ref, description=description)
    logger.info("%s granted to user %s (%s)", source.value, user_id, ref)
    return True


async def check_daily_login_bonus(
    db: AsyncSession, redis: object, user_id: int, now: datetime | None = None
) -> bool:
    """Grant the login bonus on the user's first visit of the day. True if granted."""
    return await _grant_once(
        db, redis, user_id, XPSource.DAILY_LOGIN_BONUS, day_ref(_today(now)), "Daily login bonus"
    )


async def check_daily_first_bet_bonus(
    db: AsyncSession, redis: object, user_id: int, now: datetime | None = None
) -> bool:
    """Grant the first-bet bonus for the first bet processed today. True if granted."""
    return await _grant_once(
        db, redis, user_id, XPSource.DAILY_FIRST_BET_BONUS, day_ref(_today(now)), "Daily first bet bonus"
    )


async def check_weekly_streak_bonus(
    db: AsyncSession, redis: object, user_id: int, now: datetime | None = None
) -> bool:
    """Grant the weekly streak bonus once per ISO week.

    Requires a bet on each of the last five days, today included. Days with
    a bet are read back from the daily first-bet bonus rows.
    """
    today = _today(now)
    days = [day_ref(today - timedelta(days=i)) for i in range(WEEKLY_STREAK_DAYS)]
    if len(await _paid_refs(db, user_id, XPSource.DAILY_FIRST_BET_BONUS, days)) < WEEKLY_STREAK_DAYS:
        return False
    return await _grant_once(
        db,
        redis,
        user_id,
        XPSource.WEEKLY_STREAK_BONUS,
        week_ref(today),
        f"Weekly streak bonus ({WEEKLY_STREAK_DAYS} days consecutive)",
    )


async def award_daily_bonuses(
    db: AsyncSession, redis: object, user_id: int, now: datetime | None = None
) -> list[XPSource]:
    """Bonuses earned by betting today. Returns the sources granted."""
    granted: list[XPSource] = []
    if await check_daily_first_bet_bonus(db, redis, user_id, now):
        granted.append(XPSource.DAILY_FIRST_BET_BONUS)
        # A streak can only complete on a newly active day
        if await check_weekly_streak_bonus(db, redis, user_id, now):
            granted.append(XPSource.WEEKLY_STREAK_BONUS)
    return granted

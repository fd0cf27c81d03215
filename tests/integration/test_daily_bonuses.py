"""Daily login, daily first-bet and weekly streak bonuses."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.db.models import XPLedger
from podium.progression.bonus_service import (
    award_daily_bonuses,
    check_daily_first_bet_bonus,
    check_daily_login_bonus,
    check_weekly_streak_bonus,
)
from podium.progression.xp_service import XPSource

# A Friday; the five days ending here (Mon..Fri) share ISO week 2026-W42
FRIDAY = datetime(2026, 10, 16, 18, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def bonus_db(db_session: AsyncSession, make_user):
    user = await make_user("daily")
    await db_session.commit()
    return db_session, user


async def entries(db: AsyncSession, user_id: int, source: XPSource) -> list[XPLedger]:
    result = await db.execute(
        select(XPLedger).where(XPLedger.user_id == user_id, XPLedger.source == source.value).order_by(XPLedger.id)
    )
    return list(result.scalars().all())


class TestDailyLogin:
    @pytest.mark.asyncio
    async def test_once_per_day(self, bonus_db, redis_client):
        db, user = bonus_db
        assert await check_daily_login_bonus(db, redis_client, user.id, now=FRIDAY)
        assert not await check_daily_login_bonus(db, redis_client, user.id, now=FRIDAY + timedelta(hours=3))

        rows = await entries(db, user.id, XPSource.DAILY_LOGIN_BONUS)
        assert [(r.xp_amount, r.related_entity_id) for r in rows] == [(5, "day:2026-10-16")]
        assert user.xp == 5

    @pytest.mark.asyncio
    async def test_next_day_pays_again(self, bonus_db, redis_client):
        db, user = bonus_db
        await check_daily_login_bonus(db, redis_client, user.id, now=FRIDAY)
        assert await check_daily_login_bonus(db, redis_client, user.id, now=FRIDAY + timedelta(days=1))
        assert user.xp == 10


class TestDailyFirstBet:
    @pytest.mark.asyncio
    async def test_only_first_bet_of_the_day(self, bonus_db, redis_client):
        db, user = bonus_db
        assert await check_daily_first_bet_bonus(db, redis_client, user.id, now=FRIDAY)
        assert not await check_daily_first_bet_bonus(db, redis_client, user.id, now=FRIDAY)

        rows = await entries(db, user.id, XPSource.DAILY_FIRST_BET_BONUS)
        assert [r.xp_amount for r in rows] == [10]

    @pytest.mark.asyncio
    async def test_independent_of_login_bonus(self, bonus_db, redis_client):
        db, user = bonus_db
        await check_daily_login_bonus(db, redis_client, user.id, now=FRIDAY)
        assert await check_daily_first_bet_bonus(db, redis_client, user.id, now=FRIDAY)


class TestWeeklyStreak:
    @staticmethod
    async def bet_on_days(db, redis, user_id: int, days: int) -> None:
        """First-bet bonuses on each of the ``days`` days ending on FRIDAY."""
        for offset in range(days - 1, -1, -1):
            await check_daily_first_bet_bonus(db, redis, user_id, now=FRIDAY - timedelta(days=offset))

    @pytest.mark.asyncio
    async def test_five_consecutive_days(self, bonus_db, redis_client):
        db, user = bonus_db
        await self.bet_on_days(db, redis_client, user.id, 5)

        assert await check_weekly_streak_bonus(db, redis_client, user.id, now=FRIDAY)
        rows = await entries(db, user.id, XPSource.WEEKLY_STREAK_BONUS)
        assert [(r.xp_amount, r.related_entity_id) for r in rows] == [(50, "week:2026-W42")]

    @pytest.mark.asyncio
    async def test_four_days_not_enough(self, bonus_db, redis_client):
        db, user = bonus_db
        await self.bet_on_days(db, redis_client, user.id, 4)

        assert not await check_weekly_streak_bonus(db, redis_client, user.id, now=FRIDAY)

    @pytest.mark.asyncio
    async def test_gap_breaks_the_run(self, bonus_db, redis_client):
        db, user = bonus_db
        for offset in (4, 3, 1, 0):
            await check_daily_first_bet_bonus(db, redis_client, user.id, now=FRIDAY - timedelta(days=offset))

        assert not await check_weekly_streak_bonus(db, redis_client, user.id, now=FRIDAY)

    @pytest.mark.asyncio
    async def test_once_per_iso_week(self, bonus_db, redis_client):
        db, user = bonus_db
        await self.bet_on_days(db, redis_client, user.id, 5)
        assert await check_weekly_streak_bonus(db, redis_client, user.id, now=FRIDAY)

        saturday = FRIDAY + timedelta(days=1)
        await check_daily_first_bet_bonus(db, redis_client, user.id, now=saturday)
        assert not await check_weekly_streak_bonus(db, redis_client, user.id, now=saturday)


class TestAwardDailyBonuses:
    @pytest.mark.asyncio
    async def test_first_bet_then_nothing(self, bonus_db, redis_client):
        db, user = bonus_db
        assert await award_daily_bonuses(db, redis_client, user.id, now=FRIDAY) == [XPSource.DAILY_FIRST_BET_BONUS]
        assert await award_daily_bonuses(db, redis_client, user.id, now=FRIDAY) == []

    @pytest.mark.asyncio
    async def test_fifth_day_completes_streak(self, bonus_db, redis_client):
        db, user = bonus_db
        for offset in range(4, 0, -1):
            await award_daily_bonuses(db, redis_client, user.id, now=FRIDAY - timedelta(days=offset))

        assert await award_daily_bonuses(db, redis_client, user.id, now=FRIDAY) == [
            XPSource.DAILY_FIRST_BET_BONUS,
            XPSource.WEEKLY_STREAK_BONUS,
        ]

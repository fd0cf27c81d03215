"""Integration tests for participation and win streaks."""

from __future__ import annotations

import json
from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from podium.errors import BettingWeekNotFoundError
from podium.progression.events import CHANNEL_STREAK_RECORD
from podium.progression.streak_service import (
    get_top_lifetime_streaks,
    get_top_monthly_streaks,
    get_top_win_streaks,
    get_user_streak,
    reset_monthly_streaks,
    update_participation_streak,
    update_win_streak,
)


@pytest_asyncio.fixture
async def streak_db(db_session: AsyncSession, make_user, make_week):
    """A user and five Monday-anchored betting weeks (2026 W02, W03, W04, W06, W07)."""
    user = await make_user("streaker")
    weeks = [
        await make_week(date(2026, 1, 5)),
        await make_week(date(2026, 1, 12)),
        await make_week(date(2026, 1, 19)),
        await make_week(date(2026, 2, 2)),
        await make_week(date(2026, 2, 9)),
    ]
    return db_session, user, weeks


def records(redis) -> list[dict]:
    return [json.loads(c.args[1]) for c in redis.publish.await_args_list if c.args[0] == CHANNEL_STREAK_RECORD]


class TestParticipationStreak:
    """Consecutive ISO weeks extend, gaps restart, repeats are no-ops."""

    @pytest.mark.asyncio
    async def test_first_participation(self, streak_db, redis_client):
        db, user, weeks = streak_db
        streak = await update_participation_streak(db, redis_client, user.id, weeks[0].id)

        assert streak.current_monthly_streak == 1
        assert streak.current_lifetime_streak == 1
        assert streak.longest_lifetime_streak == 1
        assert streak.total_weeks_participated == 1
        assert (streak.last_bet_week_number, streak.last_bet_year) == (2, 2026)
        assert streak.monthly_streak_started_at is not None
        assert streak.lifetime_streak_started_at is not None

    @pytest.mark.asyncio
    async def test_consecutive_weeks(self, streak_db, redis_client):
        db, user, weeks = streak_db
        for week in weeks[:3]:
            streak = await update_participation_streak(db, redis_client, user.id, week.id)

        assert streak.current_monthly_streak == 3
        assert streak.current_lifetime_streak == 3
        assert streak.longest_lifetime_streak == 3
        assert streak.total_weeks_participated == 3

    @pytest.mark.asyncio
    async def test_same_week_twice_is_noop(self, streak_db, redis_client):
        db, user, weeks = streak_db
        await update_participation_streak(db, redis_client, user.id, weeks[0].id)
        streak = await update_participation_streak(db, redis_client, user.id, weeks[0].id)

        assert streak.current_lifetime_streak == 1
        assert streak.total_weeks_participated == 1

    @pytest.mark.asyncio
    async def test_gap_restarts_at_one(self, streak_db, redis_client):
        db, user, weeks = streak_db
        for week in weeks[:3]:
            await update_participation_streak(db, redis_client, user.id, week.id)
        streak = await update_participation_streak(db, redis_client, user.id, weeks[3].id)

        assert streak.current_lifetime_streak == 1
        assert streak.current_monthly_streak == 1
        assert streak.longest_lifetime_streak == 3
        assert streak.total_weeks_participated == 4

    @pytest.mark.asyncio
    async def test_year_boundary(self, db_session, make_user, make_week, redis_client):
        """2024-W52 followed by 2025-W01 (which starts Dec 30 2024) is consecutive."""
        user = await make_user()
        w52 = await make_week(date(2024, 12, 23))
        w01 = await make_week(date(2024, 12, 30))

        await update_participation_streak(db_session, redis_client, user.id, w52.id)
        streak = await update_participation_streak(db_session, redis_client, user.id, w01.id)

        assert streak.current_lifetime_streak == 2
        assert (streak.last_bet_week_number, streak.last_bet_year) == (1, 2025)

    @pytest.mark.asyncio
    async def test_new_record_published(self, streak_db, redis_client):
        db, user, weeks = streak_db
        for week in weeks[:2]:
            await update_participation_streak(db, redis_client, user.id, week.id)
        # Gap: current falls back to 1, record stays 2
        await update_participation_streak(db, redis_client, user.id, weeks[3].id)

        assert records(redis_client) == [
            {"user_id": user.id, "kind": "lifetime", "new_record": 1, "previous_record": 0},
            {"user_id": user.id, "kind": "lifetime", "new_record": 2, "previous_record": 1},
        ]

    @pytest.mark.asyncio
    async def test_unknown_week(self, streak_db, redis_client):
        db, user, _ = streak_db
        with pytest.raises(BettingWeekNotFoundError):
            await update_participation_streak(db, redis_client, user.id, 999_999)


class TestWinStreak:
    @pytest.mark.asyncio
    async def test_consecutive_wins(self, streak_db, redis_client):
        db, user, weeks = streak_db
        for week in weeks[:3]:
            streak = await update_win_streak(db, redis_client, user.id, week.id, True)

        assert streak.current_win_streak == 3
        assert streak.best_win_streak == 3
        assert [r["new_record"] for r in records(redis_client)] == [1, 2, 3]
        assert {r["kind"] for r in records(redis_client)} == {"win"}

    @pytest.mark.asyncio
    async def test_loss_resets_and_keeps_best(self, streak_db, redis_client):
        db, user, weeks = streak_db
        await update_win_streak(db, redis_client, user.id, weeks[0].id, True)
        await update_win_streak(db, redis_client, user.id, weeks[1].id, True)
        streak = await update_win_streak(db, redis_client, user.id, weeks[2].id, False)

        assert streak.current_win_streak == 0
        assert streak.best_win_streak == 2
        assert (streak.last_win_week_number, streak.last_win_year) == (4, 2026)

    @pytest.mark.asyncio
    async def test_week_processed_once(self, streak_db, redis_client):
        """A redelivered result for an already processed week changes nothing."""
        db, user, weeks = streak_db
        await update_win_streak(db, redis_client, user.id, weeks[0].id, False)
        streak = await update_win_streak(db, redis_client, user.id, weeks[0].id, True)

        assert streak.current_win_streak == 0
        assert streak.best_win_streak == 0

    @pytest.mark.asyncio
    async def test_win_after_gap_restarts_at_one(self, streak_db, redis_client):
        db, user, weeks = streak_db
        await update_win_streak(db, redis_client, user.id, weeks[1].id, True)
        await update_win_streak(db, redis_client, user.id, weeks[2].id, True)
        streak = await update_win_streak(db, redis_client, user.id, weeks[4].id, True)

        assert streak.current_win_streak == 1
        assert streak.best_win_streak == 2

    @pytest.mark.asyncio
    async def test_independent_from_participation(self, streak_db, redis_client):
        db, user, weeks = streak_db
        await update_participation_streak(db, redis_client, user.id, weeks[0].id)
        streak = await update_win_streak(db, redis_client, user.id, weeks[0].id, True)

        assert streak.current_lifetime_streak == 1
        assert streak.current_win_streak == 1


class TestMonthlyReset:
    @pytest.mark.asyncio
    async def test_reset_keeps_lifetime_streak_running(self, streak_db, redis_client):
        db, user, weeks = streak_db
        await update_participation_streak(db, redis_client, user.id, weeks[0].id)
        await update_participation_streak(db, redis_client, user.id, weeks[1].id)

        affected = await reset_monthly_streaks(db)
        streak = await get_user_streak(db, user.id)
        assert affected == 1
        assert streak.current_monthly_streak == 0
        assert streak.monthly_streak_started_at is None
        assert streak.current_lifetime_streak == 2

        streak = await update_participation_streak(db, redis_client, user.id, weeks[2].id)
        assert streak.current_monthly_streak == 1
        assert streak.current_lifetime_streak == 3
        assert streak.monthly_streak_started_at is not None


class TestLeaderboards:
    @pytest.mark.asyncio
    async def test_top_streaks(self, db_session, make_user, make_week, redis_client):
        weeks = [await make_week(date(2026, 3, 2 + 7 * i)) for i in range(3)]
        short = await make_user("short")
        long = await make_user("long")
        await update_participation_streak(db_session, redis_client, short.id, weeks[2].id)
        for week in weeks:
            await update_participation_streak(db_session, redis_client, long.id, week.id)
            await update_win_streak(db_session, redis_client, long.id, week.id, True)

        assert [s.user_id for s in await get_top_monthly_streaks(db_session)] == [long.id, short.id]
        assert [s.user_id for s in await get_top_lifetime_streaks(db_session, limit=1)] == [long.id]
        assert [s.user_id for s in await get_top_win_streaks(db_session)] == [long.id]

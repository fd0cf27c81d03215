"""Stats snapshot builder.

Folds a user's bets, rankings, streak record and linked competitor into
one immutable UserStatsSnapshot. Read-only.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.config import get_settings
from podium.db.models import Bet, BettorRanking, Competitor, UserStreak
from podium.progression.metrics import UserStatsSnapshot
from podium.progression.xp_service import get_user

logger = logging.getLogger(__name__)

HIGH_ODDS_THRESHOLD = 10.0
COMEBACK_LOSS_RUN = 3


def as_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def is_win(bet: Bet) -> bool:
    return bool(bet.is_finalized and (bet.points_earned or 0) > 0)


def is_perfect(bet: Bet) -> bool:
    return bool(bet.is_finalized and bet.picks and all(p.is_correct for p in bet.picks))


def is_partial_win(bet: Bet) -> bool:
    if not bet.is_finalized or len(bet.picks) != 3:
        return False
    return sum(1 for p in bet.picks if p.is_correct) == 2


def has_boost(bet: Bet) -> bool:
    return any(p.has_boost for p in bet.picks)


def is_high_odds_win(bet: Bet, boosted: bool = False) -> bool:
    if not is_win(bet):
        return False
    return any(
        p.is_correct and p.odd_at_bet > HIGH_ODDS_THRESHOLD and (p.has_boost or not boosted)
        for p in bet.picks
    )


def consecutive_boost_months(bets: Iterable[Bet], now: datetime, cap: int = 24) -> int:
    """Length of the run of calendar months, ending with the current one, that contain a boosted bet."""
    months = {
        (as_utc(b.created_at).year, as_utc(b.created_at).month)
        for b in bets
        if has_boost(b)
    }
    year, month = now.year, now.month
    run = 0
    while run < cap and (year, month) in months:
        run += 1
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return run


def count_comebacks(bets: Iterable[Bet], loss_run: int = COMEBACK_LOSS_RUN) -> int:
    """Wins that immediately follow at least ``loss_run`` consecutive finalized losses."""
    comebacks = 0
    losses = 0
    for bet in sorted(bets, key=lambda b: (as_utc(b.created_at), b.id or 0)):
        if not bet.is_finalized:
            continue
        if is_win(bet):
            if losses >= loss_run:
                comebacks += 1
            losses = 0
        else:
            losses += 1
    return comebacks


def consecutive_first_places(rankings: Sequence[BettorRanking]) -> int:
    """Trailing run of rank-1 months, newest month first."""
    run = 0
    for ranking in sorted(rankings, key=lambda r: (r.year, r.month), reverse=True):
        if ranking.rank != 1:
            break
        run += 1
    return run


def best_rank(rankings: Sequence[BettorRanking]) -> int | None:
    ranks = [r.rank for r in rankings if r.rank is not None]
    return min(ranks) if ranks else None


async def build_user_stats(
    db: AsyncSession,
    user_id: int,
    now: datetime | None = None,
) -> UserStatsSnapshot:
    """Build a fresh snapshot for ``user_id``. Raises UserNotFoundError."""
    if now is None:
        now = datetime.now(timezone.utc)
    now = as_utc(now)
    settings = get_settings()

    user = await get_user(db, user_id)

    bets = list((await db.execute(select(Bet).where(Bet.user_id == user_id))).scalars().all())
    rankings = list(
        (await db.execute(select(BettorRanking).where(BettorRanking.user_id == user_id))).scalars().all()
    )
    streak = (
        await db.execute(select(UserStreak).where(UserStreak.user_id == user_id))
    ).scalar_one_or_none()

    placed = len(bets)
    won = sum(1 for b in bets if is_win(b))

    monthly = [
        b for b in bets
        if as_utc(b.created_at).year == now.year and as_utc(b.created_at).month == now.month
    ]
    current_ranking = next(
        (r for r in rankings if r.year == now.year and r.month == now.month), None
    )

    competitor = None
    if user.competitor_id is not None:
        competitor = await db.get(Competitor, user.competitor_id)
        if competitor is None:
            logger.debug("User %s links missing competitor %s", user_id, user.competitor_id)

    racing: dict = {}
    if competitor is not None:
        racing = {
            "is_competitor": True,
            "competitor_total_wins": competitor.total_wins,
            "competitor_race_count": competitor.race_count,
            "competitor_win_streak": competitor.win_streak,
            "competitor_best_win_streak": competitor.best_win_streak,
            "competitor_play_streak": competitor.play_streak,
            "competitor_best_play_streak": competitor.best_play_streak,
            "competitor_rating": competitor.rating - 2 * competitor.rating_deviation,
            "competitor_avg_rank_12": competitor.avg_rank_12,
        }

    return UserStatsSnapshot(
        user_id=user_id,
        bets_placed=placed,
        bets_won=won,
        perfect_bets=sum(1 for b in bets if is_perfect(b)),
        total_points=sum(b.points_earned or 0 for b in bets),
        win_rate=won / placed * 100 if placed else 0.0,
        partial_wins=sum(1 for b in bets if is_partial_win(b)),
        monthly_bets_placed=len(monthly),
        monthly_bets_won=sum(1 for b in monthly if is_win(b)),
        monthly_perfect_bets=sum(1 for b in monthly if is_perfect(b)),
        monthly_points=sum(b.points_earned or 0 for b in monthly),
        boosts_used=sum(1 for b in bets if has_boost(b)),
        consecutive_boost_months=consecutive_boost_months(bets, now, settings.boost_month_scan_cap),
        high_odds_wins=sum(1 for b in bets if is_high_odds_win(b)),
        boosted_high_odds_wins=sum(1 for b in bets if is_high_odds_win(b, boosted=True)),
        monthly_streak=streak.current_monthly_streak if streak else 0,
        lifetime_streak=streak.current_lifetime_streak if streak else 0,
        longest_lifetime_streak=streak.longest_lifetime_streak if streak else 0,
        consecutive_wins=streak.current_win_streak if streak else 0,
        best_win_streak=streak.best_win_streak if streak else 0,
        current_monthly_rank=current_ranking.rank if current_ranking else None,
        best_monthly_rank=best_rank(rankings),
        consecutive_monthly_wins=consecutive_first_places(rankings),
        comeback_bets=count_comebacks(bets),
        **racing,
    )

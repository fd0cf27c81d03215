"""Metric vocabulary and the per-user stats snapshot."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

# Rank used when a user has no ranking, so "rank <= N" conditions fail.
NO_RANK = 999


class Metric(str, Enum):
    BETS_PLACED = "bets_placed"
    BETS_WON = "bets_won"
    PERFECT_BETS = "perfect_bets"
    TOTAL_POINTS = "total_points"
    WIN_RATE = "win_rate"
    PARTIAL_WINS = "partial_wins"
    BOOSTS_USED = "boosts_used"
    CONSECUTIVE_BOOST_MONTHS = "consecutive_boost_months"
    HIGH_ODDS_WINS = "high_odds_wins"
    BOOSTED_HIGH_ODDS_WINS = "boosted_high_odds_wins"
    MONTHLY_STREAK = "monthly_streak"
    LIFETIME_STREAK = "lifetime_streak"
    CONSECUTIVE_WINS = "consecutive_wins"
    RANK = "rank"
    CONSECUTIVE_MONTHLY_WINS = "consecutive_monthly_wins"
    COMEBACK_BETS = "comeback_bets"
    COMPETITOR_TOTAL_WINS = "competitor_total_wins"
    COMPETITOR_RACE_COUNT = "competitor_race_count"
    COMPETITOR_WIN_STREAK = "competitor_win_streak"
    COMPETITOR_BEST_WIN_STREAK = "competitor_best_win_streak"
    COMPETITOR_PLAY_STREAK = "competitor_play_streak"
    COMPETITOR_BEST_PLAY_STREAK = "competitor_best_play_streak"
    COMPETITOR_RATING = "competitor_rating"
    COMPETITOR_AVG_RANK_12 = "competitor_avg_rank_12"


class Scope(str, Enum):
    LIFETIME = "LIFETIME"
    MONTHLY = "MONTHLY"


class UserStatsSnapshot(BaseModel):
    """Flattened metrics for one user at one point in time. Never cached."""

    model_config = ConfigDict(frozen=True)

    user_id: int

    # Betting, lifetime
    bets_placed: int = 0
    bets_won: int = 0
    perfect_bets: int = 0
    total_points: float = 0.0
    win_rate: float = 0.0
    partial_wins: int = 0

    # Betting, current calendar month
    monthly_bets_placed: int = 0
    monthly_bets_won: int = 0
    monthly_perfect_bets: int = 0
    monthly_points: float = 0.0

    # Boosts & odds
    boosts_used: int = 0
    consecutive_boost_months: int = 0
    high_odds_wins: int = 0
    boosted_high_odds_wins: int = 0

    # Streaks
    monthly_streak: int = 0
    lifetime_streak: int = 0
    longest_lifetime_streak: int = 0
    consecutive_wins: int = 0
    best_win_streak: int = 0

    # Rankings
    current_monthly_rank: int | None = None
    best_monthly_rank: int | None = None
    consecutive_monthly_wins: int = 0

    comeback_bets: int = 0

    # Racing
    is_competitor: bool = False
    competitor_total_wins: int = 0
    competitor_race_count: int = 0
    competitor_win_streak: int = 0
    competitor_best_win_streak: int = 0
    competitor_play_streak: int = 0
    competitor_best_play_streak: int = 0
    competitor_rating: float = 0.0
    competitor_avg_rank_12: float = 0.0


def metric_value(metric: Metric, scope: Scope, snapshot: UserStatsSnapshot) -> float:
    """Resolve a metric against a snapshot. Every Metric member is handled."""
    monthly = scope is Scope.MONTHLY
    match metric:
        case Metric.BETS_PLACED:
            return snapshot.monthly_bets_placed if monthly else snapshot.bets_placed
        case Metric.BETS_WON:
            return snapshot.monthly_bets_won if monthly else snapshot.bets_won
        case Metric.PERFECT_BETS:
            return snapshot.monthly_perfect_bets if monthly else snapshot.perfect_bets
        case Metric.TOTAL_POINTS:
            return snapshot.monthly_points if monthly else snapshot.total_points
        case Metric.WIN_RATE:
            return snapshot.win_rate
        case Metric.PARTIAL_WINS:
            return snapshot.partial_wins
        case Metric.BOOSTS_USED:
            return snapshot.boosts_used
        case Metric.CONSECUTIVE_BOOST_MONTHS:
            return snapshot.consecutive_boost_months
        case Metric.HIGH_ODDS_WINS:
            return snapshot.high_odds_wins
        case Metric.BOOSTED_HIGH_ODDS_WINS:
            return snapshot.boosted_high_odds_wins
        case Metric.MONTHLY_STREAK:
            return snapshot.monthly_streak
        case Metric.LIFETIME_STREAK:
            # Best run ever, so a broken streak keeps the tiers it reached
            return snapshot.longest_lifetime_streak
        case Metric.CONSECUTIVE_WINS:
            return snapshot.consecutive_wins
        case Metric.RANK:
            rank = snapshot.current_monthly_rank if monthly else snapshot.best_monthly_rank
            return NO_RANK if rank is None else rank
        case Metric.CONSECUTIVE_MONTHLY_WINS:
            return snapshot.consecutive_monthly_wins
        case Metric.COMEBACK_BETS:
            return snapshot.comeback_bets
        case Metric.COMPETITOR_TOTAL_WINS:
            return snapshot.competitor_total_wins
        case Metric.COMPETITOR_RACE_COUNT:
            return snapshot.competitor_race_count
        case Metric.COMPETITOR_WIN_STREAK:
            return snapshot.competitor_win_streak
        case Metric.COMPETITOR_BEST_WIN_STREAK:
            return snapshot.competitor_best_win_streak
        case Metric.COMPETITOR_PLAY_STREAK:
            return snapshot.competitor_play_streak
        case Metric.COMPETITOR_BEST_PLAY_STREAK:
            return snapshot.competitor_best_play_streak
        case Metric.COMPETITOR_RATING:
            return snapshot.competitor_rating
        case Metric.COMPETITOR_AVG_RANK_12:
            return snapshot.competitor_avg_rank_12
    raise AssertionError(f"unhandled metric {metric}")

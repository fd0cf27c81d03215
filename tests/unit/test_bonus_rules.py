"""Pure bonus rules: high-odds sizing and period references."""

from datetime import date

from podium.db.models import BetPick
from podium.progression.bonus_service import day_ref, high_odds_xp, week_ref


def picks(*specs: tuple[float, bool]) -> list[BetPick]:
    return [BetPick(position="first", odd_at_bet=odd, is_correct=correct) for odd, correct in specs]


class TestHighOddsXP:
    def test_below_threshold(self):
        assert high_odds_xp(picks((4.9, True), (2.0, True))) == 0

    def test_threshold_itself_pays_nothing(self):
        assert high_odds_xp(picks((5.0, True))) == 0

    def test_linear_per_correct_pick(self):
        """Odds 10 pays 25, odds 20 pays 75."""
        assert high_odds_xp(picks((10.0, True))) == 25
        assert high_odds_xp(picks((10.0, True), (20.0, True))) == 100

    def test_fractional_odds_round_down(self):
        assert high_odds_xp(picks((7.3, True))) == 11

    def test_wrong_picks_ignored(self):
        assert high_odds_xp(picks((30.0, False), (8.0, None))) == 0

    def test_capped_per_bet(self):
        assert high_odds_xp(picks((50.0, True), (45.0, True))) == 200

    def test_no_picks(self):
        assert high_odds_xp([]) == 0


class TestPeriodRefs:
    def test_day(self):
        assert day_ref(date(2026, 10, 19)) == "day:2026-10-19"

    def test_week_uses_iso_year(self):
        assert week_ref(date(2024, 12, 30)) == "week:2025-W01"

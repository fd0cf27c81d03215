"""Tier selection for temporary achievement families."""

import pytest

from podium.progression.temporary_service import (
    FAMILIES,
    TEMPORARY_KEYS,
    medal_for_rank,
    participation_tier,
    performance_tier,
)


class TestMedalForRank:
    @pytest.mark.parametrize(("rank", "key"), [(1, "gold_medal"), (2, "silver_medal"), (3, "bronze_medal")])
    def test_podium_ranks(self, rank, key):
        assert medal_for_rank(rank) == key

    def test_outside_podium(self):
        assert medal_for_rank(4) is None

    def test_unranked(self):
        assert medal_for_rank(None) is None


class TestPerformanceTier:
    def test_invincible(self):
        assert performance_tier(20, 18) == "invincible"

    def test_high_rate_but_too_few_bets_falls_back(self):
        """95% over 19 bets misses invincible's 20-bet minimum."""
        assert performance_tier(19, 18) == "olympic_form"

    def test_olympic_form(self):
        assert performance_tier(20, 17) == "olympic_form"

    def test_in_form(self):
        assert performance_tier(10, 6) == "in_form"

    def test_not_enough_bets(self):
        assert performance_tier(9, 9) is None

    def test_low_win_rate(self):
        assert performance_tier(30, 10) is None

    def test_no_bets(self):
        assert performance_tier(0, 0) is None


class TestParticipationTier:
    def test_marathon(self):
        assert participation_tier(12) == "marathon"

    def test_active_streak(self):
        assert participation_tier(5) == "active_streak"

    def test_below_threshold(self):
        assert participation_tier(4) is None


class TestFamilies:
    def test_eight_keys_in_three_families(self):
        assert set(FAMILIES) == {"rank", "performance", "participation"}
        assert len(TEMPORARY_KEYS) == 8

    def test_families_are_disjoint(self):
        keys = [k for family in FAMILIES.values() for k in family]
        assert len(keys) == len(set(keys))

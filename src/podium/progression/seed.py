"""Achievement catalog seed data.

Tiered chains link each tier to the previous one through
``prerequisite_key``. The eight temporary definitions carry an
informational condition only; the temporary controller decides who holds them.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.db.models import AchievementDefinition
from podium.db.upsert import upsert
from podium.errors import ProgressionValidationError
from podium.progression.conditions import parse_condition
from podium.progression.level_rewards import seed_level_rewards
from podium.progression.metrics import Metric
from podium.progression.xp_service import achievement_xp

logger = logging.getLogger(__name__)

ACHIEVEMENT_SEED_DATA: list[dict] = [
    # Regularity: bets placed
    {
        "key": "first_bet",
        "name": "First Prediction",
        "description": "Place your very first podium prediction",
        "category": "REGULARITY",
        "rarity": "COMMON",
        "icon": "ticket",
        "condition": {"metric": "bets_placed", "operator": "gte", "value": 1},
        "chain_name": "bets_placed",
        "tier_level": 1,
    },
    {
        "key": "regular_bettor",
        "name": "Regular",
        "description": "Place 10 predictions",
        "category": "REGULARITY",
        "rarity": "COMMON",
        "icon": "calendar",
        "condition": {"metric": "bets_placed", "operator": "gte", "value": 10},
        "chain_name": "bets_placed",
        "tier_level": 2,
        "prerequisite_key": "first_bet",
    },
    {
        "key": "seasoned_bettor",
        "name": "Seasoned",
        "description": "Place 50 predictions",
        "category": "REGULARITY",
        "rarity": "RARE",
        "icon": "calendar-check",
        "condition": {"metric": "bets_placed", "operator": "gte", "value": 50},
        "chain_name": "bets_placed",
        "tier_level": 3,
        "prerequisite_key": "regular_bettor",
    },
    {
        "key": "centurion",
        "name": "Centurion",
        "description": "Place 100 predictions",
        "category": "REGULARITY",
        "rarity": "EPIC",
        "icon": "shield",
        "unlocks_title": "Centurion",
        "condition": {"metric": "bets_placed", "operator": "gte", "value": 100},
        "chain_name": "bets_placed",
        "tier_level": 4,
        "prerequisite_key": "seasoned_bettor",
    },
    {
        "key": "monthly_grinder",
        "name": "Monthly Grinder",
        "description": "Place 4 predictions in a single calendar month",
        "category": "REGULARITY",
        "rarity": "COMMON",
        "icon": "hourglass",
        "condition": {"metric": "bets_placed", "operator": "gte", "value": 4, "scope": "MONTHLY"},
    },
    # Regularity: weekly streaks
    {
        "key": "streak_3",
        "name": "Warming Up",
        "description": "Play 3 consecutive weeks",
        "category": "REGULARITY",
        "rarity": "COMMON",
        "icon": "flame",
        "condition": {"metric": "lifetime_streak", "operator": "gte", "value": 3},
        "chain_name": "weekly_streak",
        "tier_level": 1,
    },
    {
        "key": "streak_10",
        "name": "Committed",
        "description": "Play 10 consecutive weeks",
        "category": "REGULARITY",
        "rarity": "RARE",
        "icon": "flame",
        "condition": {"metric": "lifetime_streak", "operator": "gte", "value": 10},
        "chain_name": "weekly_streak",
        "tier_level": 2,
        "prerequisite_key": "streak_3",
    },
    {
        "key": "streak_25",
        "name": "Unstoppable",
        "description": "Play 25 consecutive weeks",
        "category": "REGULARITY",
        "rarity": "EPIC",
        "icon": "flame",
        "unlocks_title": "Unstoppable",
        "condition": {"metric": "lifetime_streak", "operator": "gte", "value": 25},
        "chain_name": "weekly_streak",
        "tier_level": 3,
        "prerequisite_key": "streak_10",
    },
    # Precision: wins
    {
        "key": "first_win",
        "name": "First Points",
        "description": "Score points on a prediction",
        "category": "PRECISION",
        "rarity": "COMMON",
        "icon": "target",
        "condition": {"metric": "bets_won", "operator": "gte", "value": 1},
        "chain_name": "bets_won",
        "tier_level": 1,
    },
    {
        "key": "sharp_eye",
        "name": "Sharp Eye",
        "description": "Score points on 10 predictions",
        "category": "PRECISION",
        "rarity": "RARE",
        "icon": "eye",
        "condition": {"metric": "bets_won", "operator": "gte", "value": 10},
        "chain_name": "bets_won",
        "tier_level": 2,
        "prerequisite_key": "first_win",
    },
    {
        "key": "sniper",
        "name": "Sniper",
        "description": "Score points on 50 predictions",
        "category": "PRECISION",
        "rarity": "EPIC",
        "icon": "crosshair",
        "unlocks_title": "Sniper",
        "condition": {"metric": "bets_won", "operator": "gte", "value": 50},
        "chain_name": "bets_won",
        "tier_level": 3,
        "prerequisite_key": "sharp_eye",
    },
    # Precision: perfect podiums
    {
        "key": "perfect_podium",
        "name": "Perfect Podium",
        "description": "Predict all three podium positions correctly",
        "category": "PRECISION",
        "rarity": "RARE",
        "icon": "podium",
        "condition": {"metric": "perfect_bets", "operator": "gte", "value": 1},
        "chain_name": "perfect_bets",
        "tier_level": 1,
    },
    {
        "key": "hat_trick",
        "name": "Hat Trick",
        "description": "Predict 3 perfect podiums",
        "category": "PRECISION",
        "rarity": "EPIC",
        "icon": "podium",
        "condition": {"metric": "perfect_bets", "operator": "gte", "value": 3},
        "chain_name": "perfect_bets",
        "tier_level": 2,
        "prerequisite_key": "perfect_podium",
    },
    {
        "key": "oracle",
        "name": "Oracle",
        "description": "Predict 10 perfect podiums",
        "category": "PRECISION",
        "rarity": "LEGENDARY",
        "icon": "crystal-ball",
        "unlocks_title": "Oracle",
        "condition": {"metric": "perfect_bets", "operator": "gte", "value": 10},
        "chain_name": "perfect_bets",
        "tier_level": 3,
        "prerequisite_key": "hat_trick",
    },
    {
        "key": "close_call",
        "name": "Close Call",
        "description": "Get exactly 2 of 3 picks right 5 times",
        "category": "PRECISION",
        "rarity": "COMMON",
        "icon": "hand",
        "condition": {"metric": "partial_wins", "operator": "gte", "value": 5},
    },
    {
        "key": "consistent",
        "name": "Consistent",
        "description": "Keep a 50% win rate over at least 20 predictions",
        "category": "PRECISION",
        "rarity": "RARE",
        "icon": "chart",
        "condition": {
            "metric": "win_rate",
            "operator": "gte",
            "value": 50,
            "min_count": {"metric": "bets_placed", "value": 20},
        },
    },
    {
        "key": "hot_hand",
        "name": "Hot Hand",
        "description": "Score points 3 weeks in a row",
        "category": "PRECISION",
        "rarity": "RARE",
        "icon": "fire",
        "condition": {"metric": "consecutive_wins", "operator": "gte", "value": 3},
    },
    # Audacity
    {
        "key": "first_boost",
        "name": "Boosted",
        "description": "Use a boost on a pick",
        "category": "AUDACITY",
        "rarity": "COMMON",
        "icon": "rocket",
        "condition": {"metric": "boosts_used", "operator": "gte", "value": 1},
    },
    {
        "key": "boost_addict",
        "name": "Boost Addict",
        "description": "Use a boost 3 months in a row",
        "category": "AUDACITY",
        "rarity": "RARE",
        "icon": "rocket",
        "condition": {"metric": "consecutive_boost_months", "operator": "gte", "value": 3},
    },
    {
        "key": "underdog",
        "name": "Underdog Believer",
        "description": "Win with a correct pick at odds above 10",
        "category": "AUDACITY",
        "rarity": "RARE",
        "icon": "dog",
        "condition": {"metric": "high_odds_wins", "operator": "gte", "value": 1},
        "chain_name": "high_odds",
        "tier_level": 1,
    },
    {
        "key": "all_in",
        "name": "All In",
        "description": "Win with a boosted pick at odds above 10",
        "category": "AUDACITY",
        "rarity": "EPIC",
        "icon": "dice",
        "unlocks_title": "High Roller",
        "condition": {"metric": "boosted_high_odds_wins", "operator": "gte", "value": 1},
        "chain_name": "high_odds",
        "tier_level": 2,
        "prerequisite_key": "underdog",
    },
    {
        "key": "comeback_kid",
        "name": "Comeback Kid",
        "description": "Win right after 3 or more losses in a row",
        "category": "AUDACITY",
        "rarity": "RARE",
        "icon": "phoenix",
        "condition": {"metric": "comeback_bets", "operator": "gte", "value": 1},
    },
    # Ranking
    {
        "key": "top_10",
        "name": "Top 10",
        "description": "Finish a month in the top 10",
        "category": "RANKING",
        "rarity": "RARE",
        "icon": "medal",
        "condition": {"metric": "rank", "operator": "lte", "value": 10},
        "chain_name": "monthly_rank",
        "tier_level": 1,
    },
    {
        "key": "top_3",
        "name": "On The Podium",
        "description": "Finish a month in the top 3",
        "category": "RANKING",
        "rarity": "EPIC",
        "icon": "medal",
        "condition": {"metric": "rank", "operator": "lte", "value": 3},
        "chain_name": "monthly_rank",
        "tier_level": 2,
        "prerequisite_key": "top_10",
    },
    {
        "key": "champion",
        "name": "Champion",
        "description": "Finish a month in first place",
        "category": "RANKING",
        "rarity": "LEGENDARY",
        "icon": "crown",
        "unlocks_title": "Champion",
        "condition": {"metric": "rank", "operator": "lte", "value": 1},
        "chain_name": "monthly_rank",
        "tier_level": 3,
        "prerequisite_key": "top_3",
    },
    {
        "key": "dynasty",
        "name": "Dynasty",
        "description": "Finish first 3 months in a row",
        "category": "RANKING",
        "rarity": "LEGENDARY",
        "icon": "castle",
        "unlocks_title": "Dynasty",
        "condition": {"metric": "consecutive_monthly_wins", "operator": "gte", "value": 3},
        "prerequisite_key": "champion",
    },
    # Racing (competitors only)
    {
        "key": "first_race",
        "name": "Lights Out",
        "description": "Take part in your first race",
        "category": "RACING",
        "rarity": "COMMON",
        "icon": "flag",
        "condition": {"metric": "competitor_race_count", "operator": "gte", "value": 1},
        "chain_name": "race_count",
        "tier_level": 1,
        "domain": "RACING",
    },
    {
        "key": "race_regular",
        "name": "Paddock Regular",
        "description": "Take part in 25 races",
        "category": "RACING",
        "rarity": "RARE",
        "icon": "flag",
        "condition": {"metric": "competitor_race_count", "operator": "gte", "value": 25},
        "chain_name": "race_count",
        "tier_level": 2,
        "prerequisite_key": "first_race",
        "domain": "RACING",
    },
    {
        "key": "race_winner",
        "name": "Race Winner",
        "description": "Win a race",
        "category": "RACING",
        "rarity": "RARE",
        "icon": "trophy",
        "condition": {"metric": "competitor_total_wins", "operator": "gte", "value": 1},
        "chain_name": "race_wins",
        "tier_level": 1,
        "domain": "RACING",
    },
    {
        "key": "serial_winner",
        "name": "Serial Winner",
        "description": "Win 10 races",
        "category": "RACING",
        "rarity": "EPIC",
        "icon": "trophy",
        "unlocks_title": "Serial Winner",
        "condition": {"metric": "competitor_total_wins", "operator": "gte", "value": 10},
        "chain_name": "race_wins",
        "tier_level": 2,
        "prerequisite_key": "race_winner",
        "domain": "RACING",
    },
    {
        "key": "winning_run",
        "name": "Winning Run",
        "description": "Win 3 races in a row",
        "category": "RACING",
        "rarity": "EPIC",
        "icon": "bolt",
        "condition": {"metric": "competitor_best_win_streak", "operator": "gte", "value": 3},
        "domain": "RACING",
    },
    {
        "key": "iron_driver",
        "name": "Iron Driver",
        "description": "Race 10 sessions in a row",
        "category": "RACING",
        "rarity": "RARE",
        "icon": "wrench",
        "condition": {"metric": "competitor_best_play_streak", "operator": "gte", "value": 10},
        "domain": "RACING",
    },
    {
        "key": "front_runner",
        "name": "Front Runner",
        "description": "Average a top-3 finish over the last 12 races",
        "category": "RACING",
        "rarity": "EPIC",
        "icon": "gauge",
        "condition": {
            "metric": "competitor_avg_rank_12",
            "operator": "lte",
            "value": 3,
            "min_count": {"metric": "competitor_race_count", "value": 12},
        },
        "domain": "RACING",
    },
    {
        "key": "elite_rating",
        "name": "Elite",
        "description": "Reach a conservative rating of 1800",
        "category": "RACING",
        "rarity": "LEGENDARY",
        "icon": "star",
        "unlocks_title": "Elite",
        "condition": {"metric": "competitor_rating", "operator": "gte", "value": 1800},
        "domain": "RACING",
    },
    # Temporary: rank medals
    {
        "key": "gold_medal",
        "name": "Gold Medal",
        "description": "Hold first place in this month's ranking",
        "category": "RANKING",
        "rarity": "LEGENDARY",
        "icon": "gold",
        "condition": {"metric": "rank", "operator": "eq", "value": 1, "scope": "MONTHLY"},
        "chain_name": "rank_medal",
        "tier_level": 3,
        "is_temporary": True,
    },
    {
        "key": "silver_medal",
        "name": "Silver Medal",
        "description": "Hold second place in this month's ranking",
        "category": "RANKING",
        "rarity": "EPIC",
        "icon": "silver",
        "condition": {"metric": "rank", "operator": "eq", "value": 2, "scope": "MONTHLY"},
        "chain_name": "rank_medal",
        "tier_level": 2,
        "is_temporary": True,
    },
    {
        "key": "bronze_medal",
        "name": "Bronze Medal",
        "description": "Hold third place in this month's ranking",
        "category": "RANKING",
        "rarity": "RARE",
        "icon": "bronze",
        "condition": {"metric": "rank", "operator": "eq", "value": 3, "scope": "MONTHLY"},
        "chain_name": "rank_medal",
        "tier_level": 1,
        "is_temporary": True,
    },
    # Temporary: rolling 30-day performance
    {
        "key": "in_form",
        "name": "In Form",
        "description": "60% win rate over at least 10 bets in the last 30 days",
        "category": "PRECISION",
        "rarity": "RARE",
        "icon": "trend-up",
        "condition": {
            "metric": "win_rate",
            "operator": "gte",
            "value": 60,
            "min_count": {"metric": "bets_placed", "value": 10},
        },
        "chain_name": "form",
        "tier_level": 1,
        "is_temporary": True,
    },
    {
        "key": "olympic_form",
        "name": "Olympic Form",
        "description": "75% win rate over at least 15 bets in the last 30 days",
        "category": "PRECISION",
        "rarity": "EPIC",
        "icon": "trend-up",
        "condition": {
            "metric": "win_rate",
            "operator": "gte",
            "value": 75,
            "min_count": {"metric": "bets_placed", "value": 15},
        },
        "chain_name": "form",
        "tier_level": 2,
        "is_temporary": True,
    },
    {
        "key": "invincible",
        "name": "Invincible",
        "description": "90% win rate over at least 20 bets in the last 30 days",
        "category": "PRECISION",
        "rarity": "LEGENDARY",
        "icon": "shield-star",
        "unlocks_title": "Invincible",
        "condition": {
            "metric": "win_rate",
            "operator": "gte",
            "value": 90,
            "min_count": {"metric": "bets_placed", "value": 20},
        },
        "chain_name": "form",
        "tier_level": 3,
        "is_temporary": True,
    },
    # Temporary: weekly participation
    {
        "key": "active_streak",
        "name": "Active Streak",
        "description": "Play 5 consecutive weeks this month",
        "category": "REGULARITY",
        "rarity": "RARE",
        "icon": "pulse",
        "condition": {"metric": "monthly_streak", "operator": "gte", "value": 5},
        "chain_name": "participation",
        "tier_level": 1,
        "is_temporary": True,
    },
    {
        "key": "marathon",
        "name": "Marathon",
        "description": "Play 10 consecutive weeks without missing one",
        "category": "REGULARITY",
        "rarity": "EPIC",
        "icon": "runner",
        "condition": {"metric": "monthly_streak", "operator": "gte", "value": 10},
        "chain_name": "participation",
        "tier_level": 2,
        "is_temporary": True,
    },
]


def _normalize(definition: dict, sort_order: int) -> dict:
    """Fill defaults so every upsert writes the full row."""
    is_temporary = definition.get("is_temporary", False)
    row = {
        "unlocks_title": None,
        "prerequisite_key": None,
        "chain_name": None,
        "tier_level": 0,
        "domain": "BETTING",
        **definition,
        "is_temporary": is_temporary,
        "can_be_lost": is_temporary,
        "sort_order": sort_order,
    }
    row["xp_reward"] = 0 if is_temporary else achievement_xp(row["rarity"])
    return row


def validate_catalog(definitions: list[dict]) -> None:
    """Reject the whole catalog before any write if one entry is malformed."""
    keys = [d["key"] for d in definitions]
    if len(set(keys)) != len(keys):
        raise ProgressionValidationError("Duplicate achievement keys in catalog")
    known = set(keys)
    metrics = {m.value for m in Metric}
    for d in definitions:
        condition = parse_condition(d["condition"])
        names = [condition.metric]
        if condition.min_count is not None:
            names.append(condition.min_count.metric)
        for name in names:
            if name not in metrics:
                raise ProgressionValidationError(f"{d['key']}: unknown metric {name!r}")
        prereq = d.get("prerequisite_key")
        if prereq is not None and prereq not in known:
            raise ProgressionValidationError(f"{d['key']}: unknown prerequisite {prereq!r}")
    _validate_chains(definitions)


def _validate_chains(definitions: list[dict]) -> None:
    """Tier 1 of a permanent chain has no prerequisite; tier N requires tier N-1."""
    chains: dict[str, dict[int, dict]] = defaultdict(dict)
    for d in definitions:
        if d.get("is_temporary") or not d.get("chain_name"):
            continue
        tier = d.get("tier_level", 0)
        tiers = chains[d["chain_name"]]
        if tier < 1:
            raise ProgressionValidationError(f"{d['key']}: chain {d['chain_name']!r} needs a tier_level >= 1")
        if tier in tiers:
            raise ProgressionValidationError(
                f"{d['key']}: tier {tier} of chain {d['chain_name']!r} already used by {tiers[tier]['key']!r}"
            )
        tiers[tier] = d

    for chain, tiers in chains.items():
        for tier, d in tiers.items():
            prereq = d.get("prerequisite_key")
            if tier == 1:
                if prereq is not None:
                    raise ProgressionValidationError(f"{d['key']}: first tier of {chain!r} cannot have a prerequisite")
                continue
            previous = tiers.get(tier - 1)
            if previous is None:
                raise ProgressionValidationError(f"{d['key']}: chain {chain!r} has no tier {tier - 1}")
            if prereq != previous["key"]:
                raise ProgressionValidationError(
                    f"{d['key']}: prerequisite must be {previous['key']!r} (tier {tier - 1} of {chain!r}), got {prereq!r}"
                )


async def seed_achievements(db: AsyncSession, definitions: list[dict] | None = None) -> int:
    """Upsert all achievement definitions by key. Returns number seeded."""
    if definitions is None:
        definitions = ACHIEVEMENT_SEED_DATA
    validate_catalog(definitions)

    for i, definition in enumerate(definitions, start=1):
        await upsert(db, AchievementDefinition, _normalize(definition, i), ["key"])

    await db.commit()
    logger.info("Seeded %d achievement definitions", len(definitions))
    return len(definitions)


async def seed_catalog(db: AsyncSession) -> None:
    """Seed achievements and level rewards."""
    await seed_achievements(db)
    await seed_level_rewards(db)


async def get_catalog_stats(db: AsyncSession) -> dict:
    """Counts of definitions by category and by rarity."""
    total = (await db.execute(select(func.count(AchievementDefinition.id)))).scalar_one()
    by_category = dict(
        (await db.execute(
            select(AchievementDefinition.category, func.count(AchievementDefinition.id))
            .group_by(AchievementDefinition.category)
        )).all()
    )
    by_rarity = dict(
        (await db.execute(
            select(AchievementDefinition.rarity, func.count(AchievementDefinition.id))
            .group_by(AchievementDefinition.rarity)
        )).all()
    )
    return {"total": total, "by_category": by_category, "by_rarity": by_rarity}

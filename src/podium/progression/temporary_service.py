"""Temporary (revocable) achievements.

Three families, each allowing at most one active tier per user:

* rank medals: gold / silver / bronze from the current month's ranking
* rolling performance: invincible / olympic_form / in_form over the last 30 days
* weekly participation: marathon / active_streak from the monthly streak

Every recomputation derives the single tier a user qualifies for in each
family, awards it and revokes the rest. Records are never deleted; a
revoked tier that is earned again gets its revocation cleared and its
times_earned bumped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from podium.config import get_settings
from podium.db.models import AchievementDefinition, Bet, BettorRanking, UserAchievement, UserStreak
from podium.progression.events import AchievementRevoked, AchievementUnlocked, publish_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerformanceTier:
    key: str
    min_bets: int
    min_win_rate: float


RANK_MEDALS: dict[int, str] = {1: "gold_medal", 2: "silver_medal", 3: "bronze_medal"}

# Highest tier first
PERFORMANCE_TIERS: tuple[PerformanceTier, ...] = (
    PerformanceTier("invincible", 20, 90.0),
    PerformanceTier("olympic_form", 15, 75.0),
    PerformanceTier("in_form", 10, 60.0),
)
PARTICIPATION_TIERS: tuple[tuple[str, int], ...] = (
    ("marathon", 10),
    ("active_streak", 5),
)

FAMILIES: dict[str, tuple[str, ...]] = {
    "rank": tuple(RANK_MEDALS.values()),
    "performance": tuple(t.key for t in PERFORMANCE_TIERS),
    "participation": tuple(key for key, _ in PARTICIPATION_TIERS),
}

TEMPORARY_KEYS: frozenset[str] = frozenset(k for keys in FAMILIES.values() for k in keys)


def medal_for_rank(rank: int | None) -> str | None:
    return RANK_MEDALS.get(rank) if rank is not None else None


def performance_tier(bets: int, wins: int) -> str | None:
    """Highest performance tier for a window of ``bets`` with ``wins``."""
    if bets == 0:
        return None
    win_rate = wins / bets * 100
    for tier in PERFORMANCE_TIERS:
        if bets >= tier.min_bets and win_rate >= tier.min_win_rate:
            return tier.key
    return None


def participation_tier(monthly_streak: int) -> str | None:
    for key, weeks in PARTICIPATION_TIERS:
        if monthly_streak >= weeks:
            return key
    return None


class TemporaryAchievementController:
    """Awards and revokes temporary achievements for one user at a time."""

    def __init__(self, db: AsyncSession, redis: object) -> None:
        self.db = db
        self.redis = redis
        self._definitions: dict[str, AchievementDefinition] | None = None

    async def _load_definitions(self) -> dict[str, AchievementDefinition]:
        if self._definitions is None:
            result = await self.db.execute(
                select(AchievementDefinition).where(AchievementDefinition.is_temporary.is_(True))
            )
            self._definitions = {d.key: d for d in result.scalars()}
        return self._definitions

    async def _get_record(self, user_id: int, achievement_id: int) -> UserAchievement | None:
        result = await self.db.execute(
            select(UserAchievement).where(
                UserAchievement.user_id == user_id,
                UserAchievement.achievement_id == achievement_id,
            )
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Family evaluation
    # ------------------------------------------------------------------

    async def _rank_tier(self, user_id: int, now: datetime) -> tuple[str | None, str]:
        result = await self.db.execute(
            select(BettorRanking).where(
                BettorRanking.user_id == user_id,
                BettorRanking.month == now.month,
                BettorRanking.year == now.year,
            )
        )
        ranking = result.scalar_one_or_none()
        if ranking is None or ranking.rank is None:
            return None, "No ranking for current month"
        return medal_for_rank(ranking.rank), f"Rank changed to {ranking.rank}"

    async def _performance_tier(self, user_id: int, now: datetime) -> tuple[str | None, str]:
        window_start = now - timedelta(days=get_settings().performance_window_days)
        result = await self.db.execute(
            select(Bet).where(
                Bet.user_id == user_id,
                Bet.is_finalized.is_(True),
                Bet.created_at >= window_start,
            )
        )
        bets = list(result.scalars().all())
        if not bets:
            return None, "No bets in last 30 days"

        # A bet counts as a win when at least one pick was correct
        wins = sum(1 for b in bets if any(p.is_correct for p in b.picks))
        win_rate = wins / len(bets) * 100
        logger.debug("User %s 30-day performance: %d/%d (%.1f%%)", user_id, wins, len(bets), win_rate)
        return performance_tier(len(bets), wins), f"Win rate {win_rate:.1f}% over {len(bets)} bets"

    async def _participation_tier(self, user_id: int) -> tuple[str | None, str]:
        result = await self.db.execute(select(UserStreak).where(UserStreak.user_id == user_id))
        streak = result.scalar_one_or_none()
        if streak is None:
            return None, "No streak record found"
        weeks = streak.current_monthly_streak
        return participation_tier(weeks), f"Monthly streak at {weeks} weeks"

    async def _apply_family(self, user_id: int, family: str, target: str | None, reason: str) -> str | None:
        """Award ``target`` and revoke every other tier of the family."""
        for key in FAMILIES[family]:
            if key == target:
                continue
            why = f"Upgraded to {target}" if target and _tier_index(family, target) < _tier_index(family, key) else reason
            await self.revoke(user_id, key, why)
        if target is not None:
            await self.award_temporary(user_id, target)
        return target

    async def recompute_for_user(self, user_id: int, now: datetime | None = None) -> dict[str, str | None]:
        """Recompute all three families. Returns the active key per family."""
        if now is None:
            now = datetime.now(timezone.utc)
        logger.debug("Recomputing temporary achievements for user %s", user_id)

        rank_key, rank_reason = await self._rank_tier(user_id, now)
        perf_key, perf_reason = await self._performance_tier(user_id, now)
        part_key, part_reason = await self._participation_tier(user_id)

        return {
            "rank": await self._apply_family(user_id, "rank", rank_key, rank_reason),
            "performance": await self._apply_family(user_id, "performance", perf_key, perf_reason),
            "participation": await self._apply_family(user_id, "participation", part_key, part_reason),
        }

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    async def award_temporary(self, user_id: int, key: str) -> UserAchievement | None:
        """Activate a temporary achievement. No-op when already active.

        No XP is granted for temporary achievements.
        """
        definitions = await self._load_definitions()
        definition = definitions.get(key)
        if definition is None:
            logger.warning("Temporary achievement %s not found, skipping award for user %s", key, user_id)
            return None

        record = await self._get_record(user_id, definition.id)
        if record is not None and record.revoked_at is None:
            return record

        now = datetime.now(timezone.utc)
        if record is not None:
            record.revoked_at = None
            record.revocation_reason = None
            record.times_earned += 1
            record.unlocked_at = now
            logger.info("User %s re-earned temporary achievement %s (%dx)", user_id, key, record.times_earned)
        else:
            record = UserAchievement(
                user_id=user_id,
                achievement_id=definition.id,
                unlocked_at=now,
                times_earned=1,
                notification_sent=False,
            )
            self.db.add(record)
            logger.info("User %s earned temporary achievement %s", user_id, key)
        await self.db.flush()

        await publish_event(
            self.redis,
            AchievementUnlocked(
                user_id=user_id,
                key=definition.key,
                name=definition.name,
                rarity=definition.rarity,
                xp_reward=0,
                unlocked_title=definition.unlocks_title,
                unlocked_at=now,
                is_temporary=True,
                times_earned=record.times_earned,
            ),
        )
        return record

    async def revoke(self, user_id: int, key: str, reason: str) -> bool:
        """Mark an active temporary achievement revoked. Returns True if state changed."""
        definitions = await self._load_definitions()
        definition = definitions.get(key)
        if definition is None:
            logger.warning("Temporary achievement %s not found, skipping revoke for user %s", key, user_id)
            return False

        record = await self._get_record(user_id, definition.id)
        if record is None or record.revoked_at is not None:
            return False

        record.revoked_at = datetime.now(timezone.utc)
        record.revocation_reason = reason
        await self.db.flush()

        logger.info("Revoked achievement %s from user %s: %s", key, user_id, reason)
        await publish_event(self.redis, AchievementRevoked(user_id=user_id, key=key, reason=reason))
        return True


def _tier_index(family: str, key: str) -> int:
    return FAMILIES[family].index(key)


async def sweep_all_users(
    session_factory: async_sessionmaker[AsyncSession],
    redis: object,
    concurrency: int | None = None,
) -> dict[str, int]:
    """Recompute temporary achievements for every user with at least one bet.

    Users run on a bounded pool, each with its own session; one user's
    failure is logged and does not stop the sweep.
    """
    if concurrency is None:
        concurrency = get_settings().sweep_concurrency

    async with session_factory() as db:
        result = await db.execute(select(Bet.user_id).distinct())
        user_ids = sorted(result.scalars().all())

    semaphore = asyncio.Semaphore(max(1, concurrency))
    processed = 0
    errors = 0

    async def _one(user_id: int) -> None:
        nonlocal processed, errors
        async with semaphore:
            async with session_factory() as db:
                try:
                    await TemporaryAchievementController(db, redis).recompute_for_user(user_id)
                    await db.commit()
                    processed += 1
                except Exception:
                    await db.rollback()
                    errors += 1
                    logger.exception("Temporary achievement sweep failed for user %s", user_id)

    await asyncio.gather(*(_one(uid) for uid in user_ids))
    logger.info("Temporary achievement sweep complete: %d processed, %d errors", processed, errors)
    return {"processed": processed, "errors": errors}

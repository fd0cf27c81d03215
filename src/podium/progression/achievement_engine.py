"""Achievement unlock engine: evaluates the permanent catalog against a user's stats."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from pydantic import BaseModel
from sqlalchemy import desc, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from podium.db.models import AchievementDefinition, User, UserAchievement
from podium.errors import AchievementNotFoundError
from podium.progression.conditions import condition_progress, evaluate_condition
from podium.progression.events import (
    AchievementUnlocked,
    ActivityFinalized,
    RaceRecorded,
    publish_event,
)
from podium.progression.stats_service import build_user_stats
from podium.progression.xp_service import achievement_source, achievement_xp, add_xp, get_user

logger = logging.getLogger(__name__)

RACING = "RACING"


class AchievementUnlockResult(BaseModel):
    achievement_id: int
    key: str
    name: str
    rarity: str
    xp_reward: int
    unlocks_title: str | None = None
    unlocked_at: datetime


class AchievementEngine:
    """Unlocks permanent achievements. Temporary ones belong to the temporary controller."""

    def __init__(self, db: AsyncSession, redis: object) -> None:
        self.db = db
        self.redis = redis
        self._definitions: list[AchievementDefinition] | None = None

    async def _load_definitions(self) -> list[AchievementDefinition]:
        """Load and cache the permanent catalog, chain tiers in order."""
        if self._definitions is None:
            result = await self.db.execute(
                select(AchievementDefinition)
                .where(AchievementDefinition.is_temporary.is_(False))
                .order_by(AchievementDefinition.sort_order, AchievementDefinition.tier_level, AchievementDefinition.id)
            )
            self._definitions = list(result.scalars().all())
        return self._definitions

    async def check_achievements(self, user_id: int, now: datetime | None = None) -> list[AchievementUnlockResult]:
        """Evaluate every eligible definition for a user and unlock the ones met.

        Prerequisites are checked against the keys active before this pass,
        so a chain advances by at most one tier per evaluation.
        """
        snapshot = await build_user_stats(self.db, user_id, now)
        definitions = await self._load_definitions()

        result = await self.db.execute(
            select(UserAchievement.achievement_id, AchievementDefinition.key, UserAchievement.revoked_at)
            .join(AchievementDefinition, AchievementDefinition.id == UserAchievement.achievement_id)
            .where(UserAchievement.user_id == user_id)
        )
        rows = result.all()
        recorded_ids = {row.achievement_id for row in rows}
        active_keys = {row.key for row in rows if row.revoked_at is None}

        unlocked: list[AchievementUnlockResult] = []
        for definition in definitions:
            if definition.id in recorded_ids:
                continue
            if definition.domain == RACING and not snapshot.is_competitor:
                continue
            if definition.prerequisite_key and definition.prerequisite_key not in active_keys:
                continue
            if not evaluate_condition(definition.condition, snapshot):
                continue

            unlock = await self._unlock(user_id, definition)
            if unlock is not None:
                unlocked.append(unlock)

        if unlocked:
            logger.info(
                "User %s unlocked %d achievement(s): %s",
                user_id, len(unlocked), ", ".join(u.key for u in unlocked),
            )
        return unlocked

    async def _unlock(self, user_id: int, definition: AchievementDefinition) -> AchievementUnlockResult | None:
        """Persist one unlock, then bump counters, grant XP and emit."""
        now = datetime.now(timezone.utc)
        record = UserAchievement(
            user_id=user_id,
            achievement_id=definition.id,
            unlocked_at=now,
            times_earned=1,
            notification_sent=False,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(record)
                await self.db.flush()
        except IntegrityError:
            # Concurrent delivery already inserted it
            logger.info("Achievement %s already unlocked for user %s", definition.key, user_id)
            return None

        user = await get_user(self.db, user_id)
        user.achievement_count += 1
        user.last_achievement_unlocked_at = now

        xp = achievement_xp(definition.rarity)
        await add_xp(
            self.db,
            self.redis,
            user_id,
            xp,
            achievement_source(definition.rarity),
            related_entity_id=definition.key,
            description=f'Unlocked achievement: "{definition.name}"',
        )

        logger.info("Achievement unlocked: %s for user %s", definition.key, user_id)
        await publish_event(
            self.redis,
            AchievementUnlocked(
                user_id=user_id,
                key=definition.key,
                name=definition.name,
                rarity=definition.rarity,
                xp_reward=xp,
                unlocked_title=definition.unlocks_title,
                unlocked_at=now,
            ),
        )
        return AchievementUnlockResult(
            achievement_id=definition.id,
            key=definition.key,
            name=definition.name,
            rarity=definition.rarity,
            xp_reward=xp,
            unlocks_title=definition.unlocks_title,
            unlocked_at=now,
        )

    async def handle_activity_finalized(self, event: ActivityFinalized) -> list[AchievementUnlockResult]:
        logger.info("Checking achievements for user %s after activity finalized", event.user_id)
        return await self.check_achievements(event.user_id)

    async def handle_race_recorded(self, event: RaceRecorded) -> dict[int, list[AchievementUnlockResult]]:
        """Re-check every user linked to a competitor in the race.

        Each user runs in its own savepoint; a failure is logged and the
        loop moves on.
        """
        competitor_ids = {r.competitor_id for r in event.results}
        if not competitor_ids:
            return {}

        result = await self.db.execute(
            select(User.id).where(User.competitor_id.in_(competitor_ids)).order_by(User.id)
        )
        user_ids = list(result.scalars().all())

        unlocked: dict[int, list[AchievementUnlockResult]] = {}
        for user_id in user_ids:
            try:
                async with self.db.begin_nested():
                    unlocked[user_id] = await self.check_achievements(user_id)
            except Exception:
                logger.exception("Failed to check racing achievements for user %s", user_id)
        return unlocked

    async def get_achievement_progress(self, user_id: int, achievement_id: int) -> float:
        """100 when actively unlocked, else the linear progress estimate."""
        definition = await self.db.get(AchievementDefinition, achievement_id)
        if definition is None:
            raise AchievementNotFoundError(achievement_id)

        result = await self.db.execute(
            select(UserAchievement).where(
                UserAchievement.user_id == user_id,
                UserAchievement.achievement_id == achievement_id,
                UserAchievement.revoked_at.is_(None),
            )
        )
        if result.scalar_one_or_none() is not None:
            return 100.0

        snapshot = await build_user_stats(self.db, user_id)
        return condition_progress(definition.condition, snapshot)

    async def get_user_achievements(self, user_id: int) -> list[UserAchievement]:
        """All records for a user, revoked included, newest first."""
        result = await self.db.execute(
            select(UserAchievement)
            .where(UserAchievement.user_id == user_id)
            .order_by(desc(UserAchievement.unlocked_at), desc(UserAchievement.id))
        )
        return list(result.scalars().all())

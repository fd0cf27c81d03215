"""HTTP tests for the progression API."""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from helpers import podium
from podium.config import get_settings
from podium.db.models import AchievementDefinition
from podium.progression.level_rewards import LEVEL_REWARDS_CONFIG
from podium.progression.seed import ACHIEVEMENT_SEED_DATA
from podium.progression.temporary_service import TemporaryAchievementController
from podium.progression.xp_service import XPSource, award_xp


def auth(user) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


async def achievement_id(db: AsyncSession, key: str) -> int:
    """Look up a catalog id, then end the transaction so the app can use the shared connection."""
    result = await db.execute(select(AchievementDefinition.id).where(AchievementDefinition.key == key))
    value = result.scalar_one()
    await db.commit()
    return value


@pytest_asyncio.fixture
async def api_db(catalog: AsyncSession, make_user, make_bet):
    """Seeded catalog and one user with a single winning bet."""
    user = await make_user("api-user")
    await make_bet(user, picks=podium(True, False, False), points=3)
    await catalog.commit()
    return catalog, user


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_version(self, client: AsyncClient):
        response = await client.get("/version")
        assert response.status_code == 200
        assert "version" in response.json()


class TestListAchievements:
    @pytest.mark.asyncio
    async def test_anonymous_catalog(self, client: AsyncClient, api_db):
        response = await client.get("/api/v1/achievements")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == len(ACHIEVEMENT_SEED_DATA)
        assert data["unlocked"] == 0
        assert all(a["progress"] == 0.0 for a in data["achievements"])

    @pytest.mark.asyncio
    async def test_filters_are_case_insensitive(self, client: AsyncClient, api_db):
        response = await client.get("/api/v1/achievements", params={"rarity": "legendary", "domain": "racing"})
        assert response.status_code == 200
        achievements = response.json()["achievements"]
        assert achievements
        assert {a["rarity"] for a in achievements} == {"LEGENDARY"}
        assert {a["domain"] for a in achievements} == {"RACING"}

    @pytest.mark.asyncio
    async def test_progress_for_caller(self, client: AsyncClient, api_db):
        _, user = api_db
        response = await client.get("/api/v1/achievements", headers=auth(user))
        by_key = {a["key"]: a for a in response.json()["achievements"]}
        assert by_key["first_bet"]["progress"] == 100.0
        assert by_key["regular_bettor"]["progress"] == 10.0
        assert by_key["first_bet"]["is_unlocked"] is False

    @pytest.mark.asyncio
    async def test_lock_filters_need_a_user(self, client: AsyncClient, api_db):
        response = await client.get("/api/v1/achievements", params={"unlocked_only": True})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_lock_filters_are_exclusive(self, client: AsyncClient, api_db):
        _, user = api_db
        response = await client.get(
            "/api/v1/achievements", params={"unlocked_only": True, "locked_only": True}, headers=auth(user)
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unlocked_only(self, client: AsyncClient, api_db, redis_client):
        db, user = api_db
        await TemporaryAchievementController(db, redis_client).award_temporary(user.id, "in_form")
        await db.commit()

        response = await client.get("/api/v1/achievements", params={"unlocked_only": True}, headers=auth(user))
        data = response.json()
        assert [a["key"] for a in data["achievements"]] == ["in_form"]
        assert data["unlocked"] == 1


class TestMyAchievements:
    @pytest.mark.asyncio
    async def test_requires_identity(self, client: AsyncClient, api_db):
        response = await client.get("/api/v1/achievements/me")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient, api_db):
        response = await client.get("/api/v1/achievements/me", headers={"X-User-Id": "424242"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_revoked_achievements_hidden(self, client: AsyncClient, api_db, redis_client):
        db, user = api_db
        controller = TemporaryAchievementController(db, redis_client)
        await controller.award_temporary(user.id, "gold_medal")
        await controller.award_temporary(user.id, "marathon")
        await controller.revoke(user.id, "gold_medal", "Rank changed to 2")
        await db.commit()

        response = await client.get("/api/v1/achievements/me", headers=auth(user))
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["achievements"][0]["key"] == "marathon"
        assert data["achievements"][0]["is_temporary"] is True


class TestStats:
    @pytest.mark.asyncio
    async def test_my_stats(self, client: AsyncClient, api_db):
        _, user = api_db
        response = await client.get("/api/v1/achievements/me/stats", headers=auth(user))
        assert response.status_code == 200
        data = response.json()
        assert data["level"] == 1
        assert data["xp_for_next_level"] == 100
        assert data["betting"]["bets_placed"] == 1
        assert data["betting"]["bets_won"] == 1
        assert data["betting"]["win_rate"] == 100.0
        assert data["racing"] is None
        assert data["achievements_total"] == len(ACHIEVEMENT_SEED_DATA)

    @pytest.mark.asyncio
    async def test_public_stats(self, client: AsyncClient, api_db):
        _, user = api_db
        response = await client.get(f"/api/v1/achievements/users/{user.id}/stats")
        assert response.status_code == 200
        assert response.json()["user_id"] == user.id

    @pytest.mark.asyncio
    async def test_public_stats_unknown_user(self, client: AsyncClient, api_db):
        response = await client.get("/api/v1/achievements/users/424242/stats")
        assert response.status_code == 404


class TestTitles:
    @pytest.mark.asyncio
    async def test_equip_and_unequip(self, client: AsyncClient, api_db, redis_client):
        db, user = api_db
        await TemporaryAchievementController(db, redis_client).award_temporary(user.id, "invincible")
        await db.commit()
        invincible = await achievement_id(db, "invincible")

        response = await client.post(
            "/api/v1/achievements/me/title", json={"achievement_id": invincible}, headers=auth(user)
        )
        assert response.status_code == 200
        assert response.json() == {"current_title": "Invincible"}

        response = await client.delete("/api/v1/achievements/me/title", headers=auth(user))
        assert response.status_code == 200
        assert response.json() == {"current_title": None}

    @pytest.mark.asyncio
    async def test_title_not_unlocked(self, client: AsyncClient, api_db):
        db, user = api_db
        centurion = await achievement_id(db, "centurion")
        response = await client.post(
            "/api/v1/achievements/me/title", json={"achievement_id": centurion}, headers=auth(user)
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_achievement_without_title(self, client: AsyncClient, api_db):
        db, user = api_db
        first_bet = await achievement_id(db, "first_bet")
        response = await client.post(
            "/api/v1/achievements/me/title", json={"achievement_id": first_bet}, headers=auth(user)
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_achievement(self, client: AsyncClient, api_db):
        _, user = api_db
        response = await client.post(
            "/api/v1/achievements/me/title", json={"achievement_id": 99999}, headers=auth(user)
        )
        assert response.status_code == 404


class TestXPHistory:
    @pytest.mark.asyncio
    async def test_history(self, client: AsyncClient, api_db, redis_client):
        db, user = api_db
        await award_xp(db, redis_client, user.id, XPSource.BET_PLACED, related_entity_id="bet:1")
        await award_xp(db, redis_client, user.id, XPSource.CORRECT_PICK, related_entity_id="bet:1")
        await db.commit()

        response = await client.get("/api/v1/achievements/me/xp-history", headers=auth(user))
        assert response.status_code == 200
        data = response.json()
        assert data["total_xp"] == 30
        assert [e["source"] for e in data["entries"]] == ["CORRECT_PICK", "BET_PLACED"]

    @pytest.mark.asyncio
    async def test_default_limit_from_settings(self, client: AsyncClient, api_db, redis_client, monkeypatch):
        db, user = api_db
        for bet_id in (1, 2, 3):
            await award_xp(db, redis_client, user.id, XPSource.BET_PLACED, related_entity_id=f"bet:{bet_id}")
        await db.commit()
        settings = get_settings().model_copy(update={"xp_history_default_limit": 2})
        monkeypatch.setattr("podium.progression.router.get_settings", lambda: settings)

        response = await client.get("/api/v1/achievements/me/xp-history", headers=auth(user))
        assert response.status_code == 200
        assert [e["related_entity_id"] for e in response.json()["entries"]] == ["bet:3", "bet:2"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, 201])
    async def test_limit_out_of_range(self, client: AsyncClient, api_db, limit):
        _, user = api_db
        response = await client.get(
            "/api/v1/achievements/me/xp-history", params={"limit": limit}, headers=auth(user)
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_requires_identity(self, client: AsyncClient, api_db):
        response = await client.get("/api/v1/achievements/me/xp-history")
        assert response.status_code == 401


class TestLevelRewards:
    @pytest.mark.asyncio
    async def test_reward_table(self, client: AsyncClient, api_db):
        response = await client.get("/api/v1/achievements/level-rewards")
        assert response.status_code == 200
        rewards = response.json()["rewards"]
        assert [r["level"] for r in rewards] == [r["level"] for r in LEVEL_REWARDS_CONFIG]

    @pytest.mark.asyncio
    async def test_new_user_rewards(self, client: AsyncClient, api_db):
        _, user = api_db
        response = await client.get("/api/v1/achievements/me/level-rewards", headers=auth(user))
        data = response.json()
        assert data["level"] == 1
        assert data["unlocked"] == []
        assert data["next_reward"]["level"] == 5
        assert data["active_multiplier"] == 1.0


class TestStreakLeaderboard:
    @pytest.mark.asyncio
    async def test_known_kind(self, client: AsyncClient, api_db):
        response = await client.get("/api/v1/achievements/streaks/win")
        assert response.status_code == 200
        assert response.json() == {"kind": "win", "entries": []}

    @pytest.mark.asyncio
    async def test_unknown_kind(self, client: AsyncClient, api_db):
        response = await client.get("/api/v1/achievements/streaks/weekly")
        assert response.status_code == 400


class TestLevelLeaderboard:
    @pytest.mark.asyncio
    async def test_ordered_by_level_then_xp(self, client: AsyncClient, api_db, make_user):
        db, user = api_db
        veteran = await make_user("veteran", level=4, xp=650)
        climber = await make_user("climber", level=4, xp=700)
        rookie = await make_user("rookie", level=2, xp=120)
        await db.commit()

        response = await client.get("/api/v1/achievements/leaderboard/levels", params={"limit": 3})
        assert response.status_code == 200
        entries = response.json()["entries"]
        assert [e["user_id"] for e in entries] == [climber.id, veteran.id, rookie.id]
        assert entries[0] == {"user_id": climber.id, "display_name": "climber", "level": 4, "xp": 700}
        assert user.id not in [e["user_id"] for e in entries]


class TestDailyBonus:
    @pytest.mark.asyncio
    async def test_claimed_once_per_day(self, client: AsyncClient, api_db):
        _, user = api_db
        first = await client.post("/api/v1/achievements/me/daily-bonus", headers=auth(user))
        assert first.status_code == 200
        data = first.json()
        assert data["awarded"] is True
        assert data["xp_awarded"] == 5

        second = await client.post("/api/v1/achievements/me/daily-bonus", headers=auth(user))
        assert second.json()["awarded"] is False
        assert second.json()["xp_awarded"] == 0
        assert second.json()["total_xp"] == data["total_xp"]

    @pytest.mark.asyncio
    async def test_requires_identity(self, client: AsyncClient, api_db):
        response = await client.post("/api/v1/achievements/me/daily-bonus")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient, api_db):
        response = await client.post("/api/v1/achievements/me/daily-bonus", headers={"X-User-Id": "99999"})
        assert response.status_code == 404


class TestRequestContext:
    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-Id": "trace-42"})
        assert response.headers["X-Request-Id"] == "trace-42"

    @pytest.mark.asyncio
    async def test_request_id_generated(self, client: AsyncClient):
        first = await client.get("/health")
        second = await client.get("/health")
        assert len(first.headers["X-Request-Id"]) == 32
        assert first.headers["X-Request-Id"] != second.headers["X-Request-Id"]

"""Progression arq worker.

Consumes "activity finalized" and "race recorded" events from Redis
Streams and runs the daily / monthly temporary-achievement sweeps.

Usage: arq podium.progression.worker.WorkerSettings
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any

import redis.asyncio as aioredis
from arq import cron
from arq.connections import RedisSettings
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from podium.config import get_settings
from podium.database import close_db, get_session_factory, init_db
from podium.middleware.logging import setup_logging
from podium.progression.events import ActivityFinalized, RaceRecorded
from podium.progression.pipeline import process_activity_finalized, process_race_recorded
from podium.progression.streak_service import reset_monthly_streaks
from podium.progression.temporary_service import sweep_all_users
from podium.redis_client import create_redis, ensure_consumer_groups

logger = logging.getLogger(__name__)


def _parse(raw_data: dict[str, Any]) -> dict[str, Any]:
    """Stream entries carry a JSON ``data`` field, or flat fields."""
    data_str = raw_data.get("data")
    if isinstance(data_str, str):
        try:
            return json.loads(data_str)
        except json.JSONDecodeError:
            pass
    return dict(raw_data)


async def handle_message(
    session_factory: async_sessionmaker[AsyncSession],
    redis: object,
    stream: str,
    raw_data: dict[str, Any],
) -> None:
    """Route one stream entry to the pipeline. Raises on failure."""
    settings = get_settings()
    data = _parse(raw_data)

    async with session_factory() as db:
        try:
            if stream == settings.activity_stream:
                unlocked = await process_activity_finalized(db, redis, ActivityFinalized.model_validate(data))
                if unlocked:
                    logger.info("User %s unlocked %s", data.get("user_id"), [u.key for u in unlocked])
            elif stream == settings.race_stream:
                await process_race_recorded(db, redis, RaceRecorded.model_validate(data))
            else:
                logger.warning("Ignoring message from unknown stream %s", stream)
        except Exception:
            await db.rollback()
            raise


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB + Redis, create consumer groups and start the consumer."""
    settings = get_settings()
    setup_logging(settings, component="worker")
    await init_db(settings.database_url)

    redis_client = create_redis(settings, settings.worker_redis_max_connections)
    await ensure_consumer_groups(
        redis_client, (settings.activity_stream, settings.race_stream), settings.consumer_group
    )

    ctx["redis"] = redis_client
    ctx["session_factory"] = get_session_factory()
    ctx["consumer_task"] = asyncio.create_task(consume_progression_events(ctx))
    logger.info("Progression worker started (consumer=%s)", settings.consumer_name)


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    task: asyncio.Task | None = ctx.get("consumer_task")
    if task:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    redis_client: aioredis.Redis | None = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Progression worker shut down")


async def consume_progression_events(ctx: dict) -> None:  # type: ignore[type-arg]
    """Main consumer loop. Messages are handled one at a time and always acked."""
    settings = get_settings()
    redis_client: aioredis.Redis = ctx["redis"]
    session_factory = ctx["session_factory"]
    streams = {settings.activity_stream: ">", settings.race_stream: ">"}

    while True:
        try:
            events = await redis_client.xreadgroup(
                groupname=settings.consumer_group,
                consumername=settings.consumer_name,
                streams=streams,
                count=100,
                block=5000,
            )
        except aioredis.ResponseError as e:
            logger.error("XREADGROUP error: %s", e)
            await asyncio.sleep(1)
            continue

        if not events:
            continue

        for stream_name, messages in events:
            stream_str = stream_name if isinstance(stream_name, str) else stream_name.decode()
            for msg_id, raw_data in messages:
                try:
                    await handle_message(session_factory, redis_client, stream_str, raw_data)
                except ValidationError:
                    logger.warning("Malformed event %s on %s: %s", msg_id, stream_str, raw_data)
                except Exception:
                    logger.exception("Failed to process %s from %s", msg_id, stream_str)
                await redis_client.xack(stream_str, settings.consumer_group, msg_id)


async def daily_sweep(ctx: dict) -> dict[str, int]:  # type: ignore[type-arg]
    """Scheduled task: recompute temporary achievements for all active users."""
    return await sweep_all_users(ctx["session_factory"], ctx["redis"])


async def monthly_sweep(ctx: dict) -> dict[str, int]:  # type: ignore[type-arg]
    """Scheduled task, 1st of the month: reset monthly streaks then sweep."""
    async with ctx["session_factory"]() as db:
        await reset_monthly_streaks(db)
        await db.commit()
    return await sweep_all_users(ctx["session_factory"], ctx["redis"])


_settings = get_settings()


class WorkerSettings:
    """arq worker settings for the progression consumer and sweeps."""

    functions = [daily_sweep, monthly_sweep]
    cron_jobs = [
        cron(daily_sweep, hour={_settings.daily_sweep_hour}, minute={0}),
        cron(monthly_sweep, day={1}, hour={_settings.monthly_sweep_hour}, minute={0}),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(_settings.redis_url)
    max_jobs = 4
    job_timeout = 3600

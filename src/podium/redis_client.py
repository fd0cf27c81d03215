"""Redis clients for the API process and the progression worker.

The API holds one shared client for event publishing. The worker builds
its own client and owns the consumer groups on the inbound streams.
"""

from collections.abc import Iterable

import redis.asyncio as redis

from podium.config import Settings

_client: redis.Redis | None = None


def create_redis(settings: Settings, max_connections: int | None = None) -> redis.Redis:
    """Client for ``settings.redis_url`` with decoded string responses."""
    return redis.from_url(  # type: ignore[no-untyped-call]
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections or settings.redis_max_connections,
    )


async def ensure_consumer_groups(client: redis.Redis, streams: Iterable[str], group: str) -> None:
    """Create ``group`` on each stream, creating empty streams as needed. Existing groups are kept."""
    for stream in streams:
        try:
            await client.xgroup_create(stream, group, id="0", mkstream=True)
        except redis.ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise


async def init_redis(settings: Settings) -> None:
    global _client  # noqa: PLW0603
    _client = create_redis(settings)


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """Shared client. Raises before init_redis()."""
    if _client is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _client


def get_publisher() -> redis.Redis | None:
    """Shared client for best-effort publishing, None before init_redis()."""
    return _client

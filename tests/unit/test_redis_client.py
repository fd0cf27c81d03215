"""Shared Redis client lifecycle and consumer-group bootstrap."""

from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from podium import redis_client
from podium.redis_client import ensure_consumer_groups, get_publisher, get_redis

STREAMS = ("betting:activity_finalized", "racing:race_recorded")


class TestEnsureConsumerGroups:
    @pytest.mark.asyncio
    async def test_creates_group_on_each_stream(self):
        client = AsyncMock()
        await ensure_consumer_groups(client, STREAMS, "progression-consumers")

        assert [c.args for c in client.xgroup_create.await_args_list] == [
            (stream, "progression-consumers") for stream in STREAMS
        ]
        assert all(c.kwargs == {"id": "0", "mkstream": True} for c in client.xgroup_create.await_args_list)

    @pytest.mark.asyncio
    async def test_existing_group_kept(self):
        client = AsyncMock()
        client.xgroup_create.side_effect = redis.ResponseError("BUSYGROUP Consumer Group name already exists")

        await ensure_consumer_groups(client, STREAMS, "progression-consumers")
        assert client.xgroup_create.await_count == len(STREAMS)

    @pytest.mark.asyncio
    async def test_other_errors_raised(self):
        client = AsyncMock()
        client.xgroup_create.side_effect = redis.ResponseError("WRONGTYPE Operation against a key")

        with pytest.raises(redis.ResponseError):
            await ensure_consumer_groups(client, STREAMS, "progression-consumers")


class TestSharedClient:
    def test_get_redis_before_init(self, monkeypatch):
        monkeypatch.setattr(redis_client, "_client", None)
        with pytest.raises(RuntimeError):
            get_redis()

    def test_publisher_absent_before_init(self, monkeypatch):
        monkeypatch.setattr(redis_client, "_client", None)
        assert get_publisher() is None

    def test_publisher_is_shared_client(self, monkeypatch):
        client = AsyncMock()
        monkeypatch.setattr(redis_client, "_client", client)
        assert get_publisher() is client
        assert get_redis() is client

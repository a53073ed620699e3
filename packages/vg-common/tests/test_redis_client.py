"""
Tests for vg-common Redis client.

Validates the ``RedisClient`` wrapper over a mocked ``redis.asyncio``
backend: lifecycle, the per-session transcript stream, violation
publishing, and health check.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from vg_common.messaging import RedisClient, transcript_stream_key, violation_channel


@pytest.fixture()
def mock_redis() -> AsyncMock:
    """Return a fully-mocked ``redis.asyncio.Redis`` instance."""
    r = AsyncMock()
    r.publish = AsyncMock(return_value=1)
    r.ping = AsyncMock(return_value=True)
    r.xadd = AsyncMock(return_value="1234567890-0")
    r.xread = AsyncMock(return_value=[])
    r.aclose = AsyncMock()
    return r


@pytest.fixture()
def client(mock_redis: AsyncMock) -> RedisClient:
    c = RedisClient(url="redis://localhost:6379/0")
    c._redis = mock_redis
    return c


class TestKeys:

    def test_transcript_stream_key(self) -> None:
        assert transcript_stream_key("abc") == "transcripts:abc"

    def test_violation_channel(self) -> None:
        assert violation_channel("abc") == "violations:abc"


class TestLifecycle:

    async def test_connect_is_idempotent(self) -> None:
        with patch("vg_common.messaging.redis_client.aioredis.from_url") as mock_from:
            mock_from.return_value = AsyncMock()
            c = RedisClient(url="redis://localhost:6379/0")
            await c.connect()
            await c.connect()
            mock_from.assert_called_once_with("redis://localhost:6379/0", decode_responses=True)

    async def test_close(self, client: RedisClient, mock_redis: AsyncMock) -> None:
        await client.close()
        mock_redis.aclose.assert_awaited_once()
        assert client._redis is None

    def test_redis_property_raises_when_not_connected(self) -> None:
        c = RedisClient(url="redis://localhost:6379/0")
        with pytest.raises(RuntimeError, match="not connected"):
            _ = c.redis


class TestTranscriptStream:

    async def test_append(self, client: RedisClient, mock_redis: AsyncMock) -> None:
        entry_id = await client.append_transcript("s1", '{"id": "u1"}', maxlen=100)
        assert entry_id == "1234567890-0"
        mock_redis.xadd.assert_awaited_once_with(
            "transcripts:s1", {"data": '{"id": "u1"}'}, maxlen=100, approximate=True
        )

    async def test_append_unbounded(self, client: RedisClient, mock_redis: AsyncMock) -> None:
        await client.append_transcript("s1", "{}")
        assert mock_redis.xadd.await_args.kwargs == {"maxlen": None, "approximate": False}

    async def test_read_flattens_entries(self, client: RedisClient, mock_redis: AsyncMock) -> None:
        mock_redis.xread = AsyncMock(
            return_value=[
                ["transcripts:s1", [("1-0", {"data": "a"}), ("2-0", {"other": "x"})]],
            ]
        )

        entries = await client.read_transcripts("s1", "0-5", count=5, block=100)

        assert entries == [("1-0", "a"), ("2-0", None)]
        mock_redis.xread.assert_awaited_once_with({"transcripts:s1": "0-5"}, count=5, block=100)

    async def test_read_nothing(self, client: RedisClient, mock_redis: AsyncMock) -> None:
        mock_redis.xread = AsyncMock(return_value=None)
        assert await client.read_transcripts("s1") == []


class TestPublishViolation:

    async def test_publishes_json_on_session_channel(
        self, client: RedisClient, mock_redis: AsyncMock,
    ) -> None:
        assert await client.publish_violation("s1", {"severity": "high", "risk_score": 30}) == 1
        channel, payload = mock_redis.publish.await_args.args
        assert channel == "violations:s1"
        assert json.loads(payload) == {"severity": "high", "risk_score": 30}


class TestHealthCheck:

    async def test_healthy(self, client: RedisClient) -> None:
        assert await client.health_check() is True

    async def test_ping_failure(self, client: RedisClient, mock_redis: AsyncMock) -> None:
        mock_redis.ping = AsyncMock(side_effect=RedisConnectionError("down"))
        assert await client.health_check() is False

    async def test_not_connected(self) -> None:
        assert await RedisClient(url="redis://localhost:6379/0").health_check() is False

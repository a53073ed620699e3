"""
Redis client wrapper for VoxGuard.

Each recording session has one Redis Stream, ``transcripts:{session_id}``,
whose entries carry a single ``data`` field holding one JSON-encoded
transcription message.  Live violations found while consuming it are
published as JSON on ``violations:{session_id}``.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from vg_common.config import get_settings

DATA_FIELD = "data"


def transcript_stream_key(session_id: str) -> str:
    """Stream key that carries transcription messages for one session."""
    return f"transcripts:{session_id}"


def violation_channel(session_id: str) -> str:
    """Pub/sub channel that receives live violations for one session."""
    return f"violations:{session_id}"


class RedisClient:
    """Async Redis access for per-session transcript streams and violation channels.

    Args:
        url: Redis connection URL.  Falls back to ``Settings.redis_url``.
    """

    def __init__(self, url: str | None = None) -> None:
        self._url = url or get_settings().redis_url
        self._redis: aioredis.Redis | None = None

    async def connect(self) -> None:
        """Open the connection pool (idempotent)."""
        if self._redis is None:
            self._redis = aioredis.from_url(self._url, decode_responses=True)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    @property
    def redis(self) -> aioredis.Redis:
        """The underlying ``redis.asyncio`` client.

        Raises:
            RuntimeError: If ``connect()`` has not been called.
        """
        if self._redis is None:
            raise RuntimeError("RedisClient is not connected. Call connect() first.")
        return self._redis

    # ── transcript streams ──

    async def append_transcript(
        self,
        session_id: str,
        message_json: str,
        maxlen: int | None = None,
    ) -> str:
        """Append one encoded transcription message to a session stream.

        Returns:
            The stream entry id.
        """
        entry_id: str = await self.redis.xadd(  # type: ignore[assignment]
            transcript_stream_key(session_id),
            {DATA_FIELD: message_json},
            maxlen=maxlen,
            approximate=maxlen is not None,
        )
        return entry_id

    async def read_transcripts(
        self,
        session_id: str,
        last_id: str = "0",
        count: int = 10,
        block: int | None = None,
    ) -> list[tuple[str, str | None]]:
        """Read entries after *last_id* from a session stream.

        Args:
            session_id: Session whose stream is read.
            last_id: Entry id already consumed; ``"0"`` reads from the start.
            count: Maximum entries returned.
            block: Milliseconds to wait for new entries; ``None`` returns at once.

        Returns:
            ``(entry_id, data)`` pairs in stream order.  ``data`` is ``None``
            for an entry without a ``data`` field.
        """
        stream = transcript_stream_key(session_id)
        response = await self.redis.xread({stream: last_id}, count=count, block=block)
        return [
            (entry_id, fields.get(DATA_FIELD))
            for _key, entries in response or []
            for entry_id, fields in entries
        ]

    # ── violations ──

    async def publish_violation(self, session_id: str, event: dict[str, Any]) -> int:
        """Publish a violation event; returns the number of subscribers reached."""
        receivers: int = await self.redis.publish(
            violation_channel(session_id),
            json.dumps(event, default=str),
        )
        return receivers

    async def health_check(self) -> bool:
        """Return ``True`` if Redis answers ``PING``."""
        try:
            return bool(await self.redis.ping())
        except (RedisError, OSError, RuntimeError):
            return False

"""
Audio artifact store client for VoxGuard.

Recordings are stored as ``{bucket}/{owner_id}/{session_id}.{ext}``.
Only deletion is needed by the compliance engine (compensating cleanup
after a failed transcription), and deletion is idempotent: a missing
object counts as deleted.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from uuid import UUID

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from vg_common.config import get_settings

logger = structlog.get_logger()


def artifact_key(owner_id: str, session_id: UUID | str, extension: str | None = None) -> str:
    """Object key of a session recording inside its bucket."""
    ext = extension or get_settings().audio_file_extension
    return f"{owner_id}/{session_id}.{ext}"


class AudioStore(ABC):
    """Store of uploaded session recordings."""

    @abstractmethod
    async def delete(self, owner_id: str, session_id: UUID) -> bool:
        """Delete a session's recording.

        Returns:
            ``True`` if an object was removed, ``False`` if none existed.
        """

    async def close(self) -> None:
        """Release any resources held by the store (override if needed)."""


class HttpAudioStore(AudioStore):
    """Audio store over an object-storage HTTP API.

    Args:
        base_url: Storage API base URL.  Falls back to ``Settings.audio_store_url``.
        bucket: Bucket holding recordings.
        api_key: Bearer token.
        max_attempts: Attempts per delete for transport errors.
        client: Pre-built ``httpx.AsyncClient`` (tests inject a mock transport).
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        bucket: str | None = None,
        api_key: str | None = None,
        max_attempts: int = 3,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.audio_store_url).rstrip("/")
        self.bucket = bucket or settings.audio_store_bucket
        self.api_key = api_key if api_key is not None else settings.audio_store_api_key
        self.max_attempts = max_attempts
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def delete(self, owner_id: str, session_id: UUID) -> bool:
        key = artifact_key(owner_id, session_id)
        url = f"{self.base_url}/object/{self.bucket}/{key}"
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        @retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        async def _inner() -> httpx.Response:
            client = await self._get_client()
            return await client.delete(url, headers=headers)

        resp = await _inner()
        if resp.status_code == 404:
            logger.info("audio_artifact_absent", key=key)
            return False
        resp.raise_for_status()
        logger.info("audio_artifact_deleted", key=key)
        return True

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

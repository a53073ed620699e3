"""
Batch speech-to-text client for VoxGuard.

Downloads a session recording and submits it for diarized batch
transcription.  The response is a flat, time-ordered token list that
reconciliation re-segments by speaker.  Transient failures (transport
errors, 429 and 5xx responses) are retried with exponential back-off.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

import httpx
import structlog
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from vg_common.config import get_settings
from vg_common.exceptions import BatchTranscriptionError
from vg_common.models import BatchTranscript

logger = structlog.get_logger()


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class BatchTranscriber(ABC):
    """Source of batch transcripts for a stored recording."""

    @abstractmethod
    async def transcribe(self, audio_url: str) -> BatchTranscript:
        """Return the word-level transcript of the recording at *audio_url*.

        Raises:
            BatchTranscriptionError: If the transcript cannot be obtained.
        """

    async def close(self) -> None:
        """Release any resources held by the transcriber (override if needed)."""


class HttpBatchTranscriber(BatchTranscriber):
    """Batch transcription over the speech-to-text HTTP API.

    Args:
        api_url: Speech-to-text endpoint.  Falls back to ``Settings.batch_api_url``.
        api_key: Value for the ``xi-api-key`` header.
        model_id: Model identifier sent with each request.
        max_attempts: Attempts per HTTP call, including the first.
        timeout: Per-request timeout in seconds.
        client: Pre-built ``httpx.AsyncClient`` (tests inject a mock transport).
    """

    def __init__(
        self,
        api_url: str | None = None,
        *,
        api_key: str | None = None,
        model_id: str | None = None,
        max_attempts: int | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = get_settings()
        self.api_url = api_url or settings.batch_api_url
        self.api_key = api_key if api_key is not None else settings.batch_api_key
        self.model_id = model_id or settings.batch_model_id
        self.max_attempts = max_attempts or settings.batch_max_attempts
        self.timeout = timeout or settings.batch_timeout_s
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _with_retry(
        self,
        build: Callable[[httpx.AsyncClient], httpx.Request],
    ) -> httpx.Response:
        @retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        async def _inner() -> httpx.Response:
            client = await self._get_client()
            resp = await client.send(build(client))
            resp.raise_for_status()
            return resp

        return await _inner()

    async def _download(self, audio_url: str) -> bytes:
        resp = await self._with_retry(lambda client: client.build_request("GET", audio_url))
        return resp.content

    async def transcribe(self, audio_url: str) -> BatchTranscript:
        log = logger.bind(audio_url=audio_url)
        try:
            audio = await self._download(audio_url)
            log.info("batch_audio_downloaded", size_bytes=len(audio))

            resp = await self._with_retry(
                lambda client: client.build_request(
                    "POST",
                    self.api_url,
                    headers={"xi-api-key": self.api_key},
                    data={"model_id": self.model_id, "diarize": "true"},
                    files={"file": ("recording.webm", audio, "audio/webm")},
                )
            )
            transcript = BatchTranscript.model_validate(resp.json())
        except (httpx.HTTPStatusError, httpx.TransportError) as exc:
            log.error("batch_transcription_failed", error=str(exc))
            raise BatchTranscriptionError(str(exc)) from exc
        except (ValidationError, ValueError) as exc:
            log.error("batch_transcription_unparseable", error=str(exc))
            raise BatchTranscriptionError(f"unparseable batch response: {exc}") from exc

        log.info(
            "batch_transcription_completed",
            word_count=transcript.word_count,
            duration_s=transcript.duration,
        )
        return transcript

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

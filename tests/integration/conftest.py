"""
Integration test fixtures for VoxGuard.

Starts the real compliance service (lifespan included) on the memory
backend and swaps the outbound HTTP clients for ``httpx.MockTransport``
fakes of the batch transcription and object storage APIs.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from vg_common.config import get_settings

from compliance.audio_store import HttpAudioStore
from compliance.batch_client import HttpBatchTranscriber
from compliance.main import create_app
from compliance.reconciliation import BatchReconciler

STT_URL = "https://stt.test/v1/speech-to-text"
STORAGE_URL = "https://storage.test/storage/v1"


class FakeUpstreams:
    """Serves recording downloads, batch transcripts, and object deletes."""

    def __init__(self) -> None:
        self.words: list[dict[str, Any]] = []
        self.deleted: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, content=b"fake-webm-bytes")
        if request.method == "POST" and str(request.url) == STT_URL:
            return httpx.Response(200, json={"words": self.words, "language_code": "en"})
        if request.method == "DELETE":
            self.deleted.append(request.url.path)
            return httpx.Response(200)
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture()
def upstreams() -> FakeUpstreams:
    return FakeUpstreams()


@pytest.fixture()
def service(upstreams: FakeUpstreams) -> Iterator[TestClient]:
    """The running service with its reconciler pointed at the fake upstreams."""
    get_settings.cache_clear()
    with TestClient(create_app()) as client:
        state = client.app.state
        state.reconciler = BatchReconciler(
            state.store,
            state.rule_loader,
            HttpBatchTranscriber(STT_URL, api_key="k", client=upstreams.client()),
            HttpAudioStore(STORAGE_URL, bucket="recordings", client=upstreams.client()),
            locks=state.aggregator.locks,
        )
        yield client
    get_settings.cache_clear()

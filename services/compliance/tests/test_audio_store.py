"""Tests for the audio artifact store client."""

from __future__ import annotations

from unittest.mock import patch
from uuid import UUID

import httpx
import pytest
from tenacity import wait_none

from compliance.audio_store import HttpAudioStore, artifact_key

SID = UUID("11111111-2222-3333-4444-555555555555")
BASE_URL = "https://storage.example.com/storage/v1"


def _store(handler, max_attempts: int = 3) -> HttpAudioStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpAudioStore(
        BASE_URL + "/",
        bucket="recordings",
        api_key="secret",
        max_attempts=max_attempts,
        client=client,
    )


@pytest.fixture(autouse=True)
def _no_backoff():
    with patch("compliance.audio_store.wait_exponential", return_value=wait_none()):
        yield


def test_artifact_key() -> None:
    assert artifact_key("owner-1", SID, "webm") == f"owner-1/{SID}.webm"
    assert artifact_key("owner-1", SID).startswith("owner-1/")


class TestDelete:

    async def test_deletes_object(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        assert await _store(handler).delete("owner-1", SID) is True
        (request,) = seen
        assert request.method == "DELETE"
        assert str(request.url) == f"{BASE_URL}/object/recordings/owner-1/{SID}.webm"
        assert request.headers["authorization"] == "Bearer secret"

    async def test_missing_object_is_not_an_error(self) -> None:
        assert await _store(lambda request: httpx.Response(404)).delete("owner-1", SID) is False

    async def test_server_error_raised(self) -> None:
        with pytest.raises(httpx.HTTPStatusError):
            await _store(lambda request: httpx.Response(500)).delete("owner-1", SID)

    async def test_transport_error_retried(self) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                raise httpx.ConnectError("reset", request=request)
            return httpx.Response(204)

        assert await _store(handler).delete("owner-1", SID) is True
        assert calls["n"] == 2

    async def test_transport_error_exhausted(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        with pytest.raises(httpx.ConnectError):
            await _store(handler, max_attempts=2).delete("owner-1", SID)

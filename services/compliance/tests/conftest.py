"""Shared fixtures for compliance service tests."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import AsyncIterator
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

# Make helpers in this directory importable from test files
# (needed with --import-mode=importlib).
sys.path.append(str(Path(__file__).resolve().parent))

# Set env vars before any vg_common settings are read.
os.environ.setdefault("VG_STORE_BACKEND", "memory")
os.environ.setdefault("VG_INTAKE_ENABLED", "false")
os.environ.setdefault("VG_LOG_JSON", "false")

from compliance_factories import (  # noqa: E402
    RecordingAudioStore,
    StaticTranscriber,
    batch_words,
    make_rule,
)

from vg_common.config import get_settings  # noqa: E402
from vg_common.db import MemoryRecordStore, RecordKind  # noqa: E402
from vg_common.models import (  # noqa: E402
    BatchTranscript,
    ComplianceRule,
    Severity,
    ViolationCategory,
)

from compliance.main import create_app  # noqa: E402
from compliance.pattern_matcher import PatternMatcher  # noqa: E402
from compliance.reconciliation import BatchReconciler  # noqa: E402
from compliance.rule_loader import RuleLoader  # noqa: E402
from compliance.session_aggregator import SessionAggregator, SessionLocks  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Drop cached settings so per-test env patches take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def matcher() -> PatternMatcher:
    return PatternMatcher(timeout_ms=200)


@pytest.fixture()
def store() -> MemoryRecordStore:
    return MemoryRecordStore()


@pytest.fixture()
def pii_rule() -> ComplianceRule:
    return make_rule(
        "PII-001",
        category=ViolationCategory.PII_DISCLOSURE,
        patterns=(r"\bssn\b|\bsocial security\b",),
        risk_score=40,
        severity=Severity.HIGH,
        min_text_length=5,
    )


@pytest.fixture()
def promise_rule() -> ComplianceRule:
    return make_rule(
        "PRM-001",
        category=ViolationCategory.UNAUTHORIZED_PROMISE,
        patterns=(r"\bguarantee(d)?\b",),
        risk_score=30,
        severity=Severity.CRITICAL,
    )


@pytest.fixture()
async def seeded_store(
    store: MemoryRecordStore,
    pii_rule: ComplianceRule,
    promise_rule: ComplianceRule,
) -> MemoryRecordStore:
    """Memory store holding the PII and promise rules."""
    for rule in (promise_rule, pii_rule):
        await store.insert(RecordKind.RULES, rule.model_dump())
    return store


@pytest.fixture()
def rule_loader(seeded_store: MemoryRecordStore, matcher: PatternMatcher) -> RuleLoader:
    return RuleLoader(seeded_store, matcher)


@pytest.fixture()
def mock_redis() -> AsyncMock:
    """A mock RedisClient with async methods."""
    redis = AsyncMock()
    redis.connect = AsyncMock()
    redis.close = AsyncMock()
    redis.read_transcripts = AsyncMock(return_value=[])
    redis.publish_violation = AsyncMock(return_value=1)
    redis.health_check = AsyncMock(return_value=True)
    return redis


# ── HTTP API ──


@pytest.fixture()
def transcriber() -> StaticTranscriber:
    """Batch transcriber returning a two-speaker call."""
    return StaticTranscriber(
        BatchTranscript.model_validate({
            "words": batch_words(
                ("speaker_0", "hello I guarantee returns"),
                ("speaker_1", "what is your ssn"),
            ),
        })
    )


@pytest.fixture()
def audio_store() -> RecordingAudioStore:
    return RecordingAudioStore()


@pytest.fixture()
async def app(
    seeded_store: MemoryRecordStore,
    rule_loader: RuleLoader,
    transcriber: StaticTranscriber,
    audio_store: RecordingAudioStore,
) -> FastAPI:
    """The service app with its state wired to in-memory components."""
    await rule_loader.refresh()
    locks = SessionLocks()
    app = create_app()
    app.state.store = seeded_store
    app.state.rule_loader = rule_loader
    app.state.aggregator = SessionAggregator(seeded_store, rule_loader, locks=locks)
    app.state.reconciler = BatchReconciler(
        seeded_store,
        rule_loader,
        transcriber,
        audio_store,
        locks=locks,
        min_duration_s=0.5,
    )
    app.state.redis = None
    app.state.intake = None
    return app


@pytest.fixture()
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http

"""
Tests for the real-time session aggregator.

Covers session start and rule snapshots, single evaluation per released
segment, save-time persistence of segments and alerts, resume after a
restart, and the errors raised for unknown or finished sessions.
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch
from uuid import uuid4

import pytest

from compliance_factories import FlakyStore, make_message, make_rule

from vg_common.db import MemoryRecordStore, RecordKind
from vg_common.exceptions import PersistenceFailure, SessionNotFound, SessionNotRecording
from vg_common.models import (
    SegmentSource,
    Session,
    SessionStatus,
    Severity,
)

from compliance.pattern_matcher import PatternMatcher
from compliance.rule_loader import RuleLoader
from compliance.session_aggregator import SessionAggregator, SessionLocks


@pytest.fixture()
def aggregator(rule_loader: RuleLoader, seeded_store: MemoryRecordStore) -> SessionAggregator:
    return SessionAggregator(seeded_store, rule_loader)


async def _stored_session(store: MemoryRecordStore, session_id) -> Session:
    return Session.model_validate(await store.get(RecordKind.SESSIONS, session_id))


class StatusChangeFailingStore(FlakyStore):
    """Fails every session update that changes ``status`` while ``failing`` is set."""

    failing = True

    async def update(self, kind, record_id, changes):
        if self.failing and kind == RecordKind.SESSIONS and "status" in changes:
            raise PersistenceFailure(kind.value, "update", "injected failure")
        return await super().update(kind, record_id, changes)


# ── SessionLocks ──


class TestSessionLocks:

    async def test_serialises_work_per_session(self) -> None:
        locks = SessionLocks()
        sid = uuid4()
        order: list[str] = []
        entered = asyncio.Event()
        release = asyncio.Event()

        async def first() -> None:
            async with locks.hold(sid):
                entered.set()
                await release.wait()
                order.append("first")

        async def second() -> None:
            async with locks.hold(sid):
                order.append("second")

        task_a = asyncio.create_task(first())
        await entered.wait()
        task_b = asyncio.create_task(second())
        await asyncio.sleep(0)
        assert locks.is_held(sid)
        assert order == []
        release.set()
        await asyncio.gather(task_a, task_b)

        assert order == ["first", "second"]

    async def test_lock_dropped_when_unused(self) -> None:
        locks = SessionLocks()
        sid, other = uuid4(), uuid4()
        async with locks.hold(sid):
            async with locks.hold(other):
                assert len(locks) == 2
            assert len(locks) == 1
        assert len(locks) == 0
        assert locks.is_held(sid) is False


# ── start / ingest ──


class TestIngest:

    async def test_start_session_persists_recording(
        self, aggregator: SessionAggregator, seeded_store: MemoryRecordStore,
    ) -> None:
        session = await aggregator.start_session("owner-1", "Client call")
        stored = await _stored_session(seeded_store, session.id)
        assert stored.status == SessionStatus.RECORDING
        assert stored.title == "Client call"
        assert aggregator.active_sessions == [session.id]

    async def test_draft_then_timed(self, aggregator: SessionAggregator) -> None:
        session = await aggregator.start_session("owner-1")
        text = "I guarantee your returns"
        draft = make_message("u1", text, 1000, timed=False)
        assert await aggregator.ingest(session.id, draft) == []

        violations = await aggregator.ingest(session.id, make_message("u1", text, 1200))
        assert [v.rule.rule_code for v in violations] == ["PRM-001"]

        # Redelivery of the same utterance is not evaluated again.
        assert await aggregator.ingest(session.id, make_message("u1", text, 1300)) == []

    async def test_rule_snapshot_fixed_at_start(
        self, aggregator: SessionAggregator, seeded_store: MemoryRecordStore,
    ) -> None:
        session = await aggregator.start_session("owner-1")
        await seeded_store.insert(
            RecordKind.RULES, make_rule("NEW-1", patterns=(r"\brefund\b",)).model_dump()
        )
        violations = await aggregator.ingest(
            session.id, make_message("u1", "you get a refund", 1000)
        )
        assert violations == []

    async def test_unknown_session(self, aggregator: SessionAggregator) -> None:
        with pytest.raises(SessionNotFound):
            await aggregator.ingest(uuid4(), make_message("u1", "hello there", 1000))

    async def test_session_finished_elsewhere_is_evicted(
        self, aggregator: SessionAggregator, seeded_store: MemoryRecordStore,
    ) -> None:
        session = await aggregator.start_session("owner-1")
        await aggregator.ingest(session.id, make_message("u1", "hello there", 1000))
        await seeded_store.update(
            RecordKind.SESSIONS, session.id, {"status": SessionStatus.COMPLETED}
        )

        with pytest.raises(SessionNotRecording):
            await aggregator.ingest(session.id, make_message("u2", "more words here", 2000))
        with pytest.raises(SessionNotRecording):
            await aggregator.save(session.id)
        assert session.id not in aggregator.active_sessions
        assert await seeded_store.query(RecordKind.SEGMENTS) == []

    async def test_resumes_recording_session_from_store(
        self, aggregator: SessionAggregator, seeded_store: MemoryRecordStore,
    ) -> None:
        session = Session(owner_id="owner-2")
        await seeded_store.insert(RecordKind.SESSIONS, session.model_dump())

        violations = await aggregator.ingest(
            session.id, make_message("u1", "what is your social security number", 1000)
        )

        assert [v.rule.rule_code for v in violations] == ["PII-001"]
        assert session.id in aggregator.active_sessions

    async def test_evaluation_failure_yields_no_violations(
        self, aggregator: SessionAggregator,
    ) -> None:
        session = await aggregator.start_session("owner-1")
        with patch("compliance.session_aggregator.evaluate", side_effect=RuntimeError("boom")):
            violations = await aggregator.ingest(
                session.id, make_message("u1", "I guarantee it", 1000)
            )
        assert violations == []


# ── save ──


class TestSave:

    async def test_save_persists_segments_and_alerts(
        self, aggregator: SessionAggregator, seeded_store: MemoryRecordStore,
    ) -> None:
        session = await aggregator.start_session("owner-1")
        await aggregator.ingest(session.id, make_message("u1", "hello how are you", 1000))
        await aggregator.ingest(
            session.id, make_message("u2", "I guarantee your returns", 4000, start=2.0)
        )

        saved = await aggregator.save(session.id, "s3://recordings/owner-1/call.webm")

        assert saved.status == SessionStatus.PROCESSING
        assert saved.audio_url == "s3://recordings/owner-1/call.webm"
        assert saved.total_segments == 2
        assert saved.total_words == 8
        assert saved.total_chars == len("hello how are you") + len("I guarantee your returns")
        assert saved.risk_score == 30
        assert saved.total_alerts == 1
        assert saved.max_severity == Severity.CRITICAL

        segments = await seeded_store.query(
            RecordKind.SEGMENTS, {"session_id": session.id}, order_by="segment_index"
        )
        assert [s["segment_index"] for s in segments] == [0, 1]
        assert all(s["source"] == SegmentSource.REALTIME for s in segments)
        assert segments[1]["has_alert"] is True

        (alert,) = await seeded_store.query(RecordKind.ALERTS, {"session_id": session.id})
        assert alert["transcript_id"] == segments[1]["id"]
        assert alert["audio_start"] == 2.0

    async def test_save_flushes_held_segments(
        self, aggregator: SessionAggregator, seeded_store: MemoryRecordStore,
    ) -> None:
        session = await aggregator.start_session("owner-1")
        await aggregator.ingest(session.id, make_message("u1", "never timed", 1000, timed=False))
        await aggregator.ingest(session.id, make_message("u2", "timed words here", 1500))

        saved = await aggregator.save(session.id)

        assert saved.total_segments == 1
        assert saved.audio_url is None

    async def test_ingest_after_save_rejected(self, aggregator: SessionAggregator) -> None:
        session = await aggregator.start_session("owner-1")
        await aggregator.save(session.id)
        assert session.id not in aggregator.active_sessions
        with pytest.raises(SessionNotRecording):
            await aggregator.ingest(session.id, make_message("u9", "late words", 9000))
        with pytest.raises(SessionNotRecording):
            await aggregator.save(session.id)

    async def test_segment_insert_failure_still_stores_alerts(
        self, matcher: PatternMatcher,
    ) -> None:
        store = FlakyStore()
        await store.insert(RecordKind.RULES, make_rule("PRM-001").model_dump())
        aggregator = SessionAggregator(store, RuleLoader(store, matcher))
        session = await aggregator.start_session("owner-1")
        await aggregator.ingest(session.id, make_message("u1", "we guarantee it", 1000))

        store.fail(RecordKind.SEGMENTS, "insert")
        saved = await aggregator.save(session.id)

        assert saved.status == SessionStatus.PROCESSING
        assert saved.total_segments == 0
        assert saved.total_alerts == 1
        (alert,) = await store.query(RecordKind.ALERTS)
        assert alert["transcript_id"] is None

    async def test_retry_after_status_failure_writes_segments_once(
        self, matcher: PatternMatcher,
    ) -> None:
        store = StatusChangeFailingStore()
        await store.insert(RecordKind.RULES, make_rule("PRM-001").model_dump())
        aggregator = SessionAggregator(store, RuleLoader(store, matcher))
        session = await aggregator.start_session("owner-1")
        await aggregator.ingest(session.id, make_message("u1", "we guarantee it", 1000))

        with pytest.raises(PersistenceFailure):
            await aggregator.save(session.id)
        with pytest.raises(SessionNotRecording):
            await aggregator.ingest(session.id, make_message("u2", "late words here", 2000))

        store.failing = False
        saved = await aggregator.save(session.id)

        assert saved.status == SessionStatus.PROCESSING
        assert saved.total_segments == 1
        assert saved.total_alerts == 1
        assert len(await store.query(RecordKind.SEGMENTS)) == 1
        assert len(await store.query(RecordKind.ALERTS)) == 1

    async def test_locks_released_after_save(self, aggregator: SessionAggregator) -> None:
        session = await aggregator.start_session("owner-1")
        await aggregator.ingest(session.id, make_message("u1", "hello there", 1000))
        await aggregator.save(session.id)
        assert len(aggregator.locks) == 0


# ── close ──


class TestClose:

    async def test_close_discards_state(
        self, aggregator: SessionAggregator, seeded_store: MemoryRecordStore,
    ) -> None:
        session = await aggregator.start_session("owner-1")
        await aggregator.ingest(session.id, make_message("u1", "hello there", 1000))

        assert aggregator.close(session.id) is True
        assert aggregator.close(session.id) is False
        assert await seeded_store.query(RecordKind.SEGMENTS) == []

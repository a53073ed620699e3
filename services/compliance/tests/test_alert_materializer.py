"""
Tests for the alert materializer.

Validates alert fields copied from rules, best-effort inserts, segment
linking, and that session ``max_severity`` only ever moves up no matter
the order alerts arrive in.
"""

from __future__ import annotations

import itertools
from uuid import uuid4

import pytest

from compliance_factories import FlakyStore, make_rule

from vg_common.db import MemoryRecordStore, RecordKind
from vg_common.models import (
    ComplianceAlert,
    Session,
    Severity,
    TranscriptSegment,
)

from compliance.alert_materializer import AlertMaterializer, SegmentTiming, build_alert
from compliance.evaluator import Violation


def _violation(rule_code: str = "TST-001", severity: Severity = Severity.MEDIUM) -> Violation:
    rule = make_rule(rule_code, severity=severity, confidence_threshold=0.7, version=3)
    return Violation(
        rule=rule,
        matched_pattern=rule.patterns[0],
        matched_text="guarantee",
        confidence=rule.confidence_threshold,
    )


async def _seed_session(store: MemoryRecordStore) -> Session:
    session = Session(owner_id="owner-1")
    await store.insert(RecordKind.SESSIONS, session.model_dump())
    return session


async def _seed_segment(store: MemoryRecordStore, session: Session) -> TranscriptSegment:
    segment = TranscriptSegment(session_id=session.id, segment_index=0, text="we guarantee it")
    await store.insert(RecordKind.SEGMENTS, segment.model_dump())
    return segment


# ── build_alert ──


class TestBuildAlert:

    def test_copies_rule_fields(self) -> None:
        session_id, transcript_id = uuid4(), uuid4()
        alert = build_alert(
            session_id,
            transcript_id,
            _violation(severity=Severity.HIGH),
            SegmentTiming(start=1.5, end=3.0),
            speaker="speaker_1",
            context_text="we guarantee it",
        )
        assert alert.session_id == session_id
        assert alert.transcript_id == transcript_id
        assert alert.rule_code == "TST-001"
        assert alert.rule_version == 3
        assert alert.severity == Severity.HIGH
        assert alert.confidence == 0.7
        assert (alert.audio_start, alert.audio_end) == (1.5, 3.0)
        assert alert.speaker_id == "speaker_1"
        assert alert.context_text == "we guarantee it"


# ── materialize ──


class TestMaterialize:

    async def test_no_violations_is_noop(self, store: MemoryRecordStore) -> None:
        session = await _seed_session(store)
        ids = await AlertMaterializer(store).materialize(session.id, None, [], SegmentTiming())
        assert ids == []
        assert await store.query(RecordKind.ALERTS) == []

    async def test_inserts_and_updates_session(self, store: MemoryRecordStore) -> None:
        session = await _seed_session(store)
        violations = [_violation("A-1", Severity.LOW), _violation("B-1", Severity.HIGH)]

        ids = await AlertMaterializer(store).materialize(
            session.id, None, violations, SegmentTiming(0.0, 1.0)
        )

        assert len(ids) == 2
        alerts = await store.query(RecordKind.ALERTS, {"session_id": session.id})
        assert {a["rule_code"] for a in alerts} == {"A-1", "B-1"}
        stored = Session.model_validate(await store.get(RecordKind.SESSIONS, session.id))
        assert stored.total_alerts == 2
        assert stored.max_severity == Severity.HIGH

    async def test_links_segment(self, store: MemoryRecordStore) -> None:
        session = await _seed_session(store)
        segment = await _seed_segment(store, session)
        materializer = AlertMaterializer(store)

        first = await materializer.materialize(
            session.id, segment.id, [_violation("A-1")], SegmentTiming()
        )
        second = await materializer.materialize(
            session.id, segment.id, [_violation("B-1")], SegmentTiming()
        )

        row = await store.get(RecordKind.SEGMENTS, segment.id)
        assert row["has_alert"] is True
        assert row["alert_ids"] == first + second
        for alert in await store.query(RecordKind.ALERTS):
            assert ComplianceAlert.model_validate(alert).transcript_id == segment.id

    async def test_failed_insert_skipped(self) -> None:
        store = FlakyStore()
        session = await _seed_session(store)
        store.fail(RecordKind.ALERTS, "insert", times=1)

        ids = await AlertMaterializer(store).materialize(
            session.id,
            None,
            [_violation("A-1", Severity.CRITICAL), _violation("B-1", Severity.LOW)],
            SegmentTiming(),
        )

        assert len(ids) == 1
        alerts = await store.query(RecordKind.ALERTS)
        assert [a["rule_code"] for a in alerts] == ["B-1"]
        stored = Session.model_validate(await store.get(RecordKind.SESSIONS, session.id))
        assert stored.total_alerts == 1
        assert stored.max_severity == Severity.LOW

    async def test_all_inserts_fail(self) -> None:
        store = FlakyStore()
        session = await _seed_session(store)
        store.fail(RecordKind.ALERTS, "insert")

        ids = await AlertMaterializer(store).materialize(
            session.id, None, [_violation()], SegmentTiming()
        )

        assert ids == []
        stored = Session.model_validate(await store.get(RecordKind.SESSIONS, session.id))
        assert stored.total_alerts == 0
        assert stored.max_severity is None

    async def test_session_update_skipped_for_batch(self, store: MemoryRecordStore) -> None:
        session = await _seed_session(store)
        await AlertMaterializer(store).materialize(
            session.id, None, [_violation()], SegmentTiming(), update_session=False
        )
        stored = Session.model_validate(await store.get(RecordKind.SESSIONS, session.id))
        assert stored.total_alerts == 0
        assert len(await store.query(RecordKind.ALERTS)) == 1


# ── apply_to_session ──


class TestMaxSeverity:

    @pytest.mark.parametrize(
        "order",
        list(itertools.permutations([Severity.MEDIUM, Severity.CRITICAL, Severity.HIGH])),
    )
    async def test_max_severity_independent_of_order(
        self, store: MemoryRecordStore, order: tuple[Severity, ...],
    ) -> None:
        session = await _seed_session(store)
        materializer = AlertMaterializer(store)
        for index, severity in enumerate(order):
            await materializer.materialize(
                session.id, None, [_violation(f"R-{index}", severity)], SegmentTiming()
            )
        stored = Session.model_validate(await store.get(RecordKind.SESSIONS, session.id))
        assert stored.max_severity == Severity.CRITICAL
        assert stored.total_alerts == 3

    async def test_missing_session(self, store: MemoryRecordStore) -> None:
        assert await AlertMaterializer(store).apply_to_session(uuid4(), 1, Severity.LOW) is False

    async def test_update_failure_reported(self) -> None:
        store = FlakyStore()
        session = await _seed_session(store)
        store.fail(RecordKind.SESSIONS, "update")
        assert await AlertMaterializer(store).apply_to_session(session.id, 1, Severity.LOW) is False

"""
Alert materializer for VoxGuard.

Persists evaluator violations as compliance alerts, links them to their
transcript segment, and maintains the denormalized counters on the
parent session (``total_alerts`` and ``max_severity``).

Every write goes through the record store one row at a time.  Alert
inserts are best-effort: a failed insert is logged and skipped, and the
session counters reflect only the alerts that were actually stored.
The materializer does not deduplicate by content; callers guarantee at
most one call per segment.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

import structlog

from vg_common.db.store import RecordKind, RecordStore
from vg_common.exceptions import PersistenceFailure
from vg_common.models import ComplianceAlert, Severity

from compliance import metrics
from compliance.evaluator import Violation

logger = structlog.get_logger()


@dataclass(frozen=True)
class SegmentTiming:
    """Audio span of the segment a violation was found in (seconds)."""

    start: float | None = None
    end: float | None = None


def build_alert(
    session_id: UUID,
    transcript_id: UUID | None,
    violation: Violation,
    timing: SegmentTiming,
    speaker: str | None = None,
    context_text: str | None = None,
) -> ComplianceAlert:
    """Build the alert record for one violation.

    Severity and category are copied from the rule so later rule edits
    never change an existing alert.
    """
    rule = violation.rule
    return ComplianceAlert(
        session_id=session_id,
        transcript_id=transcript_id,
        rule_code=rule.rule_code,
        rule_version=rule.version,
        category=rule.category,
        severity=rule.severity,
        matched_text=violation.matched_text,
        matched_pattern=violation.matched_pattern,
        context_text=context_text,
        confidence=violation.confidence,
        audio_start=timing.start,
        audio_end=timing.end,
        speaker_id=speaker,
    )


class AlertMaterializer:
    """Writes alerts and keeps segment and session rollups in step.

    Args:
        store: Record store for alerts, segments, and sessions.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def materialize(
        self,
        session_id: UUID,
        transcript_id: UUID | None,
        violations: Sequence[Violation],
        timing: SegmentTiming,
        speaker: str | None = None,
        context_text: str | None = None,
        update_session: bool = True,
    ) -> list[UUID]:
        """Persist *violations* in order and return the stored alert ids.

        Args:
            session_id: Owning session.
            transcript_id: Segment the violations came from, if persisted.
            violations: Evaluator output, inserted in this order.
            timing: Audio span of the segment.
            speaker: Segment speaker.
            context_text: Segment text stored on each alert.
            update_session: Apply ``total_alerts``/``max_severity`` to the
                session.  Batch reconciliation passes ``False`` and writes
                the rollups itself in one update.

        Returns:
            Ids of the alerts that were inserted.
        """
        if not violations:
            return []
        log = logger.bind(session_id=str(session_id))

        inserted: list[ComplianceAlert] = []
        for violation in violations:
            alert = build_alert(session_id, transcript_id, violation, timing, speaker, context_text)
            try:
                await self._store.insert(RecordKind.ALERTS, alert.model_dump())
            except PersistenceFailure as exc:
                metrics.ALERT_INSERT_FAILURES.inc()
                log.warning(
                    "alert_insert_skipped",
                    rule_code=violation.rule.rule_code,
                    error=str(exc),
                )
                continue
            inserted.append(alert)

        if not inserted:
            return []
        alert_ids = [a.id for a in inserted]

        if transcript_id is not None:
            await self._link_segment(transcript_id, alert_ids, log)
        if update_session:
            highest = Severity.max_of(*(a.severity for a in inserted))
            await self.apply_to_session(session_id, len(inserted), highest)

        log.info(
            "alerts_materialized",
            transcript_id=str(transcript_id) if transcript_id else None,
            alert_count=len(inserted),
            skipped=len(violations) - len(inserted),
        )
        return alert_ids

    async def apply_to_session(
        self,
        session_id: UUID,
        alert_count: int,
        severity: Severity | None,
    ) -> bool:
        """Add *alert_count* to the session and raise its ``max_severity``.

        ``max_severity`` only ever moves up here, whatever order alerts
        arrive in.  Returns ``False`` if the session could not be updated.
        """
        try:
            session = await self._store.get(RecordKind.SESSIONS, session_id)
            if session is None:
                logger.warning("alert_session_missing", session_id=str(session_id))
                return False
            changes = {
                "total_alerts": int(session.get("total_alerts") or 0) + alert_count,
                "max_severity": Severity.max_of(session.get("max_severity"), severity),
            }
            return await self._store.update(RecordKind.SESSIONS, session_id, changes)
        except PersistenceFailure as exc:
            logger.warning(
                "session_alert_rollup_failed",
                session_id=str(session_id),
                error=str(exc),
            )
            return False

    async def _link_segment(
        self,
        transcript_id: UUID,
        alert_ids: list[UUID],
        log: structlog.typing.FilteringBoundLogger,
    ) -> None:
        try:
            segment = await self._store.get(RecordKind.SEGMENTS, transcript_id)
            if segment is None:
                log.warning("alert_segment_missing", transcript_id=str(transcript_id))
                return
            existing = [UUID(str(a)) for a in (segment.get("alert_ids") or [])]
            await self._store.update(
                RecordKind.SEGMENTS,
                transcript_id,
                {"has_alert": True, "alert_ids": existing + alert_ids},
            )
        except PersistenceFailure as exc:
            log.warning(
                "alert_segment_link_failed",
                transcript_id=str(transcript_id),
                error=str(exc),
            )

"""
Real-time session aggregator for VoxGuard.

Owns the live side of a session: every streaming delivery passes through
the session's :class:`SegmentTracker`, each released segment is evaluated
once against the rule snapshot taken when the session started, and the
evaluated segments are buffered until the recording is saved.

All work for one session is serialised by a per-session ``asyncio.Lock``
shared with batch reconciliation, so stopping a recording waits for
in-flight ingestion and reconciliation waits for the save.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator
from uuid import UUID

import structlog

from vg_common.db.store import RecordKind, RecordStore
from vg_common.exceptions import PersistenceFailure, SessionNotFound, SessionNotRecording
from vg_common.models import (
    ComplianceRule,
    SegmentSource,
    Session,
    SessionStatus,
    TranscriptMessage,
    TranscriptSegment,
)

from compliance import metrics
from compliance.alert_materializer import AlertMaterializer, SegmentTiming
from compliance.evaluator import EMPTY_RESULT, EvaluationResult, Violation, evaluate
from compliance.rule_loader import RuleLoader
from compliance.segment_tracker import SegmentTracker, TrackedSegment

logger = structlog.get_logger()


class SessionLocks:
    """Registry of one ``asyncio.Lock`` per session.

    A lock is removed once no caller holds or awaits it.
    """

    def __init__(self) -> None:
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._users: dict[UUID, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: UUID) -> AsyncIterator[None]:
        """Serialise the enclosed block with all other work on *session_id*."""
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._users[session_id] = self._users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[session_id] -= 1
            if not self._users[session_id]:
                del self._users[session_id]
                del self._locks[session_id]

    def is_held(self, session_id: UUID) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class EvaluatedSegment:
    """A released segment and the result of its single evaluation."""

    segment: TrackedSegment
    result: EvaluationResult


@dataclass
class LiveSession:
    """In-process state of one recording session.

    ``persisted`` is set once the buffered segments have been written;
    from then on only the status change to ``processing`` is outstanding.
    """

    session: Session
    rules: tuple[ComplianceRule, ...]
    tracker: SegmentTracker
    buffered: list[EvaluatedSegment] = field(default_factory=list)
    persisted: bool = False


class SessionAggregator:
    """Tracks, evaluates, and persists the live segments of recording sessions.

    Args:
        store: Record store for sessions, segments, and alerts.
        rule_loader: Source of the per-session rule snapshot.
        materializer: Alert writer.  Built over *store* when omitted.
        locks: Per-session lock registry, shared with reconciliation.
    """

    def __init__(
        self,
        store: RecordStore,
        rule_loader: RuleLoader,
        materializer: AlertMaterializer | None = None,
        locks: SessionLocks | None = None,
    ) -> None:
        self._store = store
        self._rule_loader = rule_loader
        self._materializer = materializer or AlertMaterializer(store)
        self.locks = locks or SessionLocks()
        self._live: dict[UUID, LiveSession] = {}

    @property
    def active_sessions(self) -> list[UUID]:
        return list(self._live)

    # ── lifecycle ──

    async def start_session(self, owner_id: str, title: str | None = None) -> Session:
        """Create a ``recording`` session and take its rule snapshot."""
        session = Session(owner_id=owner_id, title=title)
        await self._store.insert(RecordKind.SESSIONS, session.model_dump())
        rules = tuple(await self._rule_loader.load())
        self._live[session.id] = LiveSession(
            session=session,
            rules=rules,
            tracker=SegmentTracker(),
        )
        logger.info(
            "session_started",
            session_id=str(session.id),
            owner_id=owner_id,
            rule_count=len(rules),
        )
        return session

    async def ingest(self, session_id: UUID, message: TranscriptMessage) -> list[Violation]:
        """Feed one streaming delivery and return violations it revealed.

        Raises:
            SessionNotFound: If the session does not exist.
            SessionNotRecording: If the session is no longer recording, or
                its recording is being saved.
        """
        async with self.locks.hold(session_id):
            live = await self._live_session(session_id)
            if live.persisted:
                raise SessionNotRecording(str(session_id), "saving")
            violations: list[Violation] = []
            for segment in live.tracker.observe(message):
                result = self._evaluate(live, segment)
                live.buffered.append(EvaluatedSegment(segment=segment, result=result))
                violations.extend(result.violations)
            if violations:
                logger.info(
                    "live_violations_detected",
                    session_id=str(session_id),
                    message_id=message.id,
                    count=len(violations),
                )
            return violations

    async def save(self, session_id: UUID, audio_url: str | None = None) -> Session:
        """Persist every buffered segment and move the session to ``processing``.

        Each segment is written as: segment row, then session metrics, then
        its alerts.  A failed write is logged and the remaining segments
        are still persisted.  Segments are written at most once: if the
        final status change fails, a retried save only repeats that change.

        Raises:
            SessionNotFound: If the session does not exist.
            SessionNotRecording: If the session is no longer recording.
            PersistenceFailure: If the status change could not be stored.
        """
        async with self.locks.hold(session_id):
            live = await self._live_session(session_id)
            log = logger.bind(session_id=str(session_id))

            written = 0
            if not live.persisted:
                for segment in live.tracker.flush():
                    live.buffered.append(
                        EvaluatedSegment(segment=segment, result=self._evaluate(live, segment))
                    )
                for item in live.buffered:
                    if await self._persist_segment(session_id, item, log):
                        written += 1
                log.info(
                    "session_segments_persisted",
                    segments=len(live.buffered),
                    persisted=written,
                )
                live.buffered.clear()
                live.persisted = True

            changes: dict = {"status": SessionStatus.PROCESSING}
            if audio_url is not None:
                changes["audio_url"] = audio_url
            await self._store.update(RecordKind.SESSIONS, session_id, changes)
            self._live.pop(session_id, None)

            log.info("session_saved", audio_url=audio_url)
            record = await self._store.get(RecordKind.SESSIONS, session_id)
            return Session.model_validate(record)

    def close(self, session_id: UUID) -> bool:
        """Drop in-process state for a session without persisting it."""
        live = self._live.pop(session_id, None)
        if live is not None:
            logger.info(
                "session_closed",
                session_id=str(session_id),
                discarded=len(live.buffered),
            )
        return live is not None

    # ── internals ──

    async def _live_session(self, session_id: UUID) -> LiveSession:
        record = await self._store.get(RecordKind.SESSIONS, session_id)
        if record is None:
            self._live.pop(session_id, None)
            raise SessionNotFound(str(session_id))
        session = Session.model_validate(record)
        if session.status != SessionStatus.RECORDING:
            self._live.pop(session_id, None)
            raise SessionNotRecording(str(session_id), session.status.value)

        live = self._live.get(session_id)
        if live is not None:
            return live

        # Recording session started by another process: resume with a fresh snapshot.
        live = LiveSession(
            session=session,
            rules=tuple(await self._rule_loader.load()),
            tracker=SegmentTracker(),
        )
        self._live[session_id] = live
        logger.info("session_resumed", session_id=str(session_id))
        return live

    def _evaluate(self, live: LiveSession, segment: TrackedSegment) -> EvaluationResult:
        try:
            return evaluate(segment.text, live.rules, self._rule_loader.matcher)
        except Exception:
            logger.exception(
                "segment_evaluation_failed",
                session_id=str(live.session.id),
                segment_index=segment.segment_index,
            )
            return EMPTY_RESULT

    async def _persist_segment(
        self,
        session_id: UUID,
        item: EvaluatedSegment,
        log: structlog.typing.FilteringBoundLogger,
    ) -> bool:
        tracked = item.segment
        row = TranscriptSegment(
            session_id=session_id,
            segment_index=tracked.segment_index,
            text=tracked.text,
            start_time=tracked.start_time,
            end_time=tracked.end_time,
            words=list(tracked.words),
            word_count=tracked.word_count,
            char_count=tracked.char_count,
            speaker_id=tracked.speaker_id,
            source=SegmentSource.REALTIME,
            timestamp_ms=tracked.timestamp_ms,
            relative_time_ms=tracked.relative_time_ms,
            language=tracked.language,
            confidence=tracked.confidence,
        )

        transcript_id: UUID | None = row.id
        try:
            await self._store.insert(RecordKind.SEGMENTS, row.model_dump())
        except PersistenceFailure as exc:
            metrics.SEGMENT_PERSIST_FAILURES.inc()
            log.warning(
                "segment_persist_failed",
                segment_index=tracked.segment_index,
                error=str(exc),
            )
            transcript_id = None
        else:
            await self._add_segment_metrics(session_id, row, item.result.risk_score, log)

        if item.result.has_violations:
            await self._materializer.materialize(
                session_id,
                transcript_id,
                item.result.violations,
                SegmentTiming(start=tracked.start_time, end=tracked.end_time),
                speaker=tracked.speaker_id,
                context_text=tracked.text,
            )
        return transcript_id is not None

    async def _add_segment_metrics(
        self,
        session_id: UUID,
        row: TranscriptSegment,
        risk_score: int,
        log: structlog.typing.FilteringBoundLogger,
    ) -> None:
        try:
            session = await self._store.get(RecordKind.SESSIONS, session_id)
            if session is None:
                log.warning("segment_session_missing")
                return
            await self._store.update(
                RecordKind.SESSIONS,
                session_id,
                {
                    "total_segments": int(session.get("total_segments") or 0) + 1,
                    "total_words": int(session.get("total_words") or 0) + row.word_count,
                    "total_chars": int(session.get("total_chars") or 0) + row.char_count,
                    "risk_score": int(session.get("risk_score") or 0) + risk_score,
                },
            )
        except PersistenceFailure as exc:
            log.warning("session_metrics_update_failed", error=str(exc))

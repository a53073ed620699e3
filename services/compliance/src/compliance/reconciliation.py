"""
Batch reconciliation for VoxGuard.

After a recording is saved, the full audio is re-transcribed with speaker
diarization and the batch transcript replaces the real-time segments.
Reconciliation is a resumable step log whose cursor is persisted in
``Session.reconcile_step``::

    not_started --purge--> purged --insert--> inserted --finalize--> done

Every step is idempotent, so a session left in ``processing`` by a failed
step is retried from its cursor.  A batch transcript with no usable words
deletes the session instead (alerts, segments, session row, audio).
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable
from uuid import UUID

import httpx
import structlog

from vg_common.config import get_settings
from vg_common.db.store import RecordKind, RecordStore
from vg_common.exceptions import (
    BatchTranscriptionError,
    PersistenceFailure,
    ReconciliationPartialFailure,
    SessionNotFound,
    SessionNotSaved,
    TranscriptionEmptyFailure,
)
from vg_common.models import (
    BatchTranscript,
    ComplianceRule,
    ReconcileStep,
    SegmentSource,
    Session,
    SessionStatus,
    Severity,
    TokenType,
    TranscriptSegment,
    TranscriptWord,
)

from compliance import metrics
from compliance.alert_materializer import AlertMaterializer, SegmentTiming
from compliance.audio_store import AudioStore
from compliance.batch_client import BatchTranscriber
from compliance.evaluator import evaluate
from compliance.rule_loader import RuleLoader
from compliance.session_aggregator import SessionLocks

logger = structlog.get_logger()

_STEP_ORDER = list(ReconcileStep)


@dataclass(frozen=True)
class SpeakerSegment:
    """A contiguous run of tokens from one speaker."""

    text: str
    words: tuple[TranscriptWord, ...]
    start_time: float
    end_time: float
    speaker_id: str | None

    @property
    def word_count(self) -> int:
        return sum(1 for w in self.words if w.is_word)


def resegment_by_speaker(words: Sequence[TranscriptWord]) -> list[SpeakerSegment]:
    """Split a flat batch token list into one segment per speaker turn.

    A segment starts whenever a non-spacing token's speaker differs from
    the previous token's.  Spacing tokens never open a segment; they are
    kept inside the current one and the joined text is stripped.
    """
    runs: list[list[TranscriptWord]] = []
    current: list[TranscriptWord] = []
    speaker: str | None = None

    for word in words:
        if word.type == TokenType.SPACING:
            if current:
                current.append(word)
            continue
        if current and word.speaker_id != speaker:
            runs.append(current)
            current = []
        if not current:
            speaker = word.speaker_id
        current.append(word)
    if current:
        runs.append(current)

    segments: list[SpeakerSegment] = []
    for run in runs:
        text = "".join(w.text for w in run).strip()
        if not text:
            continue
        timed = [w for w in run if w.type != TokenType.SPACING]
        segments.append(
            SpeakerSegment(
                text=text,
                words=tuple(run),
                start_time=timed[0].start,
                end_time=max(w.end for w in timed),
                speaker_id=timed[0].speaker_id,
            )
        )
    return segments


def _speaker_count(words: Sequence[TranscriptWord]) -> int:
    return len({w.speaker_id for w in words if w.is_word and w.speaker_id})


class BatchReconciler:
    """Replaces a session's real-time segments with batch-derived ones.

    Args:
        store: Record store for sessions, segments, and alerts.
        rule_loader: Source of the rule snapshot used for re-evaluation.
        transcriber: Batch speech-to-text client.
        audio_store: Recording store, used only by the compensating delete.
        locks: Per-session locks shared with the real-time aggregator.
        min_duration_s: Shortest acceptable batch transcript.  Falls back
            to ``Settings.min_batch_duration_s``.
    """

    def __init__(
        self,
        store: RecordStore,
        rule_loader: RuleLoader,
        transcriber: BatchTranscriber,
        audio_store: AudioStore | None = None,
        locks: SessionLocks | None = None,
        min_duration_s: float | None = None,
    ) -> None:
        self._store = store
        self._rule_loader = rule_loader
        self._transcriber = transcriber
        self._audio_store = audio_store
        self._locks = locks or SessionLocks()
        self._materializer = AlertMaterializer(store)
        self._min_duration_s = (
            get_settings().min_batch_duration_s if min_duration_s is None else min_duration_s
        )

    async def reconcile(self, session_id: UUID, audio_url: str | None = None) -> Session:
        """Reconcile one session against its batch transcript.

        Args:
            session_id: Session to reconcile.
            audio_url: Recording location.  Defaults to ``Session.audio_url``.

        Returns:
            The completed session.

        Raises:
            SessionNotFound: If the session does not exist.
            SessionNotSaved: If the session has not been saved and so is not
                ``processing``.
            TranscriptionEmptyFailure: If the batch transcript is unusable;
                the session has been deleted.
            ReconciliationPartialFailure: If transcription or a step failed;
                the session stays ``processing`` for a retry.
        """
        async with self._locks.hold(session_id):
            session = await self._load_session(session_id)
            log = logger.bind(session_id=str(session_id))
            if session.reconcile_step == ReconcileStep.DONE:
                log.info("reconciliation_already_done")
                return session
            if session.status != SessionStatus.PROCESSING:
                log.warning("reconciliation_rejected", status=session.status.value)
                raise SessionNotSaved(str(session_id), session.status.value)

            url = audio_url or session.audio_url
            if not url:
                metrics.RECONCILIATIONS.labels(outcome="partial").inc()
                raise ReconciliationPartialFailure(str(session_id), "transcribe", "no audio url")
            if audio_url and audio_url != session.audio_url:
                await self._update_session(session_id, {"audio_url": audio_url}, "transcribe")

            try:
                transcript = await self._transcriber.transcribe(url)
            except BatchTranscriptionError as exc:
                metrics.RECONCILIATIONS.labels(outcome="partial").inc()
                log.warning("reconciliation_transcribe_failed", error=str(exc))
                raise ReconciliationPartialFailure(str(session_id), "transcribe", str(exc)) from exc

            reason = self._rejection_reason(transcript)
            if reason is not None:
                complete = await self._compensating_delete(session, log)
                metrics.RECONCILIATIONS.labels(outcome="empty").inc()
                log.warning("transcription_empty", reason=reason, cleanup_complete=complete)
                raise TranscriptionEmptyFailure(str(session_id), reason, cleanup_complete=complete)

            result = await self._run_steps(session, transcript, log)
            metrics.RECONCILIATIONS.labels(outcome="completed").inc()
            return result

    async def retry(self, session_id: UUID) -> Session:
        """Resume a stuck reconciliation from its persisted cursor."""
        return await self.reconcile(session_id)

    async def find_stuck_sessions(self, older_than_s: float | None = None) -> list[Session]:
        """List ``processing`` sessions not updated for *older_than_s* seconds."""
        threshold = (
            get_settings().stuck_processing_after_s if older_than_s is None else older_than_s
        )
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=threshold)
        rows = await self._store.query(
            RecordKind.SESSIONS,
            {"status": SessionStatus.PROCESSING},
            order_by="updated_at",
        )
        stuck = [s for s in (Session.model_validate(r) for r in rows) if s.updated_at < cutoff]
        logger.info("stuck_sessions_found", count=len(stuck), older_than_s=threshold)
        return stuck

    # ── validation & cleanup ──

    def _rejection_reason(self, transcript: BatchTranscript) -> str | None:
        if transcript.word_count < 1:
            return "batch transcript has no words"
        if transcript.duration < self._min_duration_s:
            return (
                f"batch transcript duration {transcript.duration:.2f}s "
                f"is below {self._min_duration_s:.2f}s"
            )
        return None

    async def _compensating_delete(
        self,
        session: Session,
        log: structlog.typing.FilteringBoundLogger,
    ) -> bool:
        """Delete everything the session owns.  Returns ``True`` if every step succeeded."""
        sid = session.id
        complete = True
        for name, kind, filters in (
            ("alerts", RecordKind.ALERTS, {"session_id": sid}),
            ("segments", RecordKind.SEGMENTS, {"session_id": sid}),
            ("session", RecordKind.SESSIONS, {"id": sid}),
        ):
            try:
                deleted = await self._store.delete(kind, filters)
                log.info("compensating_delete_step", step=name, deleted=deleted)
            except PersistenceFailure as exc:
                complete = False
                log.warning("compensating_delete_step_failed", step=name, error=str(exc))

        if self._audio_store is not None:
            try:
                await self._audio_store.delete(session.owner_id, sid)
            except httpx.HTTPError as exc:
                complete = False
                log.warning("compensating_delete_step_failed", step="audio", error=str(exc))
        return complete

    # ── step log ──

    async def _run_steps(
        self,
        session: Session,
        transcript: BatchTranscript,
        log: structlog.typing.FilteringBoundLogger,
    ) -> Session:
        sid = session.id
        cursor = session.reconcile_step
        rules = tuple(await self._rule_loader.load())
        risk_score: int | None = None

        if _STEP_ORDER.index(cursor) < _STEP_ORDER.index(ReconcileStep.PURGED):
            await self._step("purge", sid, self._purge(sid))
            await self._update_session(sid, {"reconcile_step": ReconcileStep.PURGED}, "purge")
            log.info("reconciliation_step_done", step="purge")

        if _STEP_ORDER.index(cursor) < _STEP_ORDER.index(ReconcileStep.INSERTED):
            risk_score = await self._step("insert", sid, self._insert(sid, transcript, rules))
            await self._update_session(sid, {"reconcile_step": ReconcileStep.INSERTED}, "insert")
            log.info("reconciliation_step_done", step="insert")

        await self._step("finalize", sid, self._finalize(sid, transcript, rules, risk_score))
        log.info("reconciliation_completed", resumed_from=cursor.value)
        return await self._load_session(sid)

    async def _step(self, name: str, session_id: UUID, work: Awaitable[Any]) -> Any:
        try:
            return await work
        except PersistenceFailure as exc:
            metrics.RECONCILIATIONS.labels(outcome="partial").inc()
            logger.warning(
                "reconciliation_step_failed",
                session_id=str(session_id),
                step=name,
                error=str(exc),
            )
            raise ReconciliationPartialFailure(str(session_id), name, str(exc)) from exc

    async def _update_session(self, session_id: UUID, changes: dict, step: str) -> None:
        try:
            updated = await self._store.update(RecordKind.SESSIONS, session_id, changes)
        except PersistenceFailure as exc:
            metrics.RECONCILIATIONS.labels(outcome="partial").inc()
            raise ReconciliationPartialFailure(str(session_id), step, str(exc)) from exc
        if not updated:
            raise SessionNotFound(str(session_id))

    async def _purge(self, session_id: UUID) -> None:
        await self._store.delete(RecordKind.ALERTS, {"session_id": session_id})
        await self._store.delete(RecordKind.SEGMENTS, {"session_id": session_id})

    async def _insert(
        self,
        session_id: UUID,
        transcript: BatchTranscript,
        rules: tuple[ComplianceRule, ...],
    ) -> int:
        # Clear anything a previous attempt of this step left behind.
        await self._store.delete(RecordKind.ALERTS, {"session_id": session_id})
        await self._store.delete(
            RecordKind.SEGMENTS,
            {"session_id": session_id, "source": SegmentSource.BATCH},
        )

        risk_score = 0
        for index, piece in enumerate(resegment_by_speaker(transcript.words)):
            result = evaluate(piece.text, rules, self._rule_loader.matcher)
            row = TranscriptSegment(
                session_id=session_id,
                segment_index=index,
                text=piece.text,
                start_time=piece.start_time,
                end_time=piece.end_time,
                words=list(piece.words),
                word_count=piece.word_count,
                char_count=len(piece.text),
                speaker_id=piece.speaker_id,
                source=SegmentSource.BATCH,
                language=transcript.language_code,
            )
            await self._store.insert(RecordKind.SEGMENTS, row.model_dump())
            if result.has_violations:
                await self._materializer.materialize(
                    session_id,
                    row.id,
                    result.violations,
                    SegmentTiming(start=piece.start_time, end=piece.end_time),
                    speaker=piece.speaker_id,
                    context_text=piece.text,
                    update_session=False,
                )
            risk_score += result.risk_score
        return risk_score

    async def _finalize(
        self,
        session_id: UUID,
        transcript: BatchTranscript,
        rules: tuple[ComplianceRule, ...],
        risk_score: int | None,
    ) -> None:
        segments = await self._store.query(
            RecordKind.SEGMENTS,
            {"session_id": session_id, "source": SegmentSource.BATCH},
        )
        alerts = await self._store.query(RecordKind.ALERTS, {"session_id": session_id})
        if risk_score is None:
            # Resumed after insert: the score is recomputed from the stored text.
            risk_score = sum(
                evaluate(s["text"], rules, self._rule_loader.matcher).risk_score for s in segments
            )

        await self._update_session(
            session_id,
            {
                "total_segments": len(segments),
                "total_words": sum(int(s.get("word_count") or 0) for s in segments),
                "total_chars": sum(int(s.get("char_count") or 0) for s in segments),
                "total_alerts": len(alerts),
                "risk_score": risk_score,
                "max_severity": Severity.max_of(*(a.get("severity") for a in alerts)),
                "duration_seconds": transcript.duration,
                "speakers_detected": _speaker_count(transcript.words),
                "ended_at": datetime.now(timezone.utc),
                "status": SessionStatus.COMPLETED,
                "batch_processed": True,
                "reconcile_step": ReconcileStep.DONE,
            },
            "finalize",
        )

    async def _load_session(self, session_id: UUID) -> Session:
        record = await self._store.get(RecordKind.SESSIONS, session_id)
        if record is None:
            raise SessionNotFound(str(session_id))
        return Session.model_validate(record)

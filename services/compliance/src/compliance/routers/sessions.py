"""
Session lifecycle API router for VoxGuard.

Starts recording sessions, ingests streaming transcription messages,
saves recordings, and runs batch reconciliation.  Stored segments and
alerts of a session can be listed and summarised.  Domain failures map
to HTTP status codes: unknown session 404, session not recording 409,
reconciling an unsaved session 409, empty transcription 422, partial
reconciliation 409, store unavailable 503.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from vg_common.db.store import RecordKind, RecordStore
from vg_common.exceptions import (
    PersistenceFailure,
    ReconciliationPartialFailure,
    SessionNotFound,
    SessionNotRecording,
    SessionNotSaved,
    TranscriptionEmptyFailure,
)
from vg_common.models import (
    ComplianceAlert,
    Session,
    Severity,
    TranscriptMessage,
    TranscriptSegment,
)

from compliance.alert_stats import AlertSummary, summarize_alerts
from compliance.dependencies import get_aggregator, get_intake, get_reconciler, get_store
from compliance.intake import StreamIntake
from compliance.reconciliation import BatchReconciler
from compliance.schemas.rule_schemas import ViolationSummary
from compliance.schemas.session_schemas import (
    MessageIngestResponse,
    ReconcileRequest,
    SaveRequest,
    SessionCreateRequest,
    StuckSessionsResponse,
)
from compliance.session_aggregator import SessionAggregator

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", status_code=201, response_model=Session)
async def start_session(
    body: SessionCreateRequest,
    aggregator: SessionAggregator = Depends(get_aggregator),
    intake: StreamIntake | None = Depends(get_intake),
) -> Session:
    try:
        session = await aggregator.start_session(body.owner_id, body.title)
    except PersistenceFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if intake is not None:
        intake.start(session.id)
    return session


@router.get("/stuck", response_model=StuckSessionsResponse)
async def list_stuck_sessions(
    older_than_s: float | None = Query(default=None, ge=0),
    reconciler: BatchReconciler = Depends(get_reconciler),
) -> StuckSessionsResponse:
    sessions = await reconciler.find_stuck_sessions(older_than_s)
    return StuckSessionsResponse(sessions=sessions, total=len(sessions))


@router.get("/{session_id}", response_model=Session)
async def get_session(
    session_id: UUID,
    store: RecordStore = Depends(get_store),
) -> Session:
    try:
        record = await store.get(RecordKind.SESSIONS, session_id)
    except PersistenceFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if record is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return Session.model_validate(record)


async def _require_session(store: RecordStore, session_id: UUID) -> None:
    if await store.get(RecordKind.SESSIONS, session_id) is None:
        raise HTTPException(status_code=404, detail="Session not found")


@router.get("/{session_id}/segments", response_model=list[TranscriptSegment])
async def list_segments(
    session_id: UUID,
    store: RecordStore = Depends(get_store),
) -> list[TranscriptSegment]:
    """Stored transcript segments in utterance order."""
    try:
        await _require_session(store, session_id)
        rows = await store.query(
            RecordKind.SEGMENTS, {"session_id": session_id}, order_by="segment_index"
        )
    except PersistenceFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return [TranscriptSegment.model_validate(row) for row in rows]


@router.get("/{session_id}/alerts", response_model=list[ComplianceAlert])
async def list_alerts(
    session_id: UUID,
    store: RecordStore = Depends(get_store),
) -> list[ComplianceAlert]:
    try:
        await _require_session(store, session_id)
        rows = await store.query(
            RecordKind.ALERTS, {"session_id": session_id}, order_by="created_at"
        )
    except PersistenceFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return [ComplianceAlert.model_validate(row) for row in rows]


@router.get("/{session_id}/alerts/summary", response_model=AlertSummary)
async def session_alert_summary(
    session_id: UUID,
    store: RecordStore = Depends(get_store),
) -> AlertSummary:
    alerts = await list_alerts(session_id, store)
    return summarize_alerts(alerts)


@router.post("/{session_id}/messages", response_model=MessageIngestResponse)
async def ingest_message(
    session_id: UUID,
    body: TranscriptMessage,
    aggregator: SessionAggregator = Depends(get_aggregator),
) -> MessageIngestResponse:
    try:
        violations = await aggregator.ingest(session_id, body)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SessionNotRecording as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except PersistenceFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return MessageIngestResponse(
        session_id=session_id,
        violations=[ViolationSummary.from_violation(v) for v in violations],
        max_severity=Severity.max_of(*(v.severity for v in violations)),
    )


@router.post("/{session_id}/save", response_model=Session)
async def save_session(
    session_id: UUID,
    body: SaveRequest | None = None,
    aggregator: SessionAggregator = Depends(get_aggregator),
    intake: StreamIntake | None = Depends(get_intake),
) -> Session:
    if intake is not None:
        await intake.stop(session_id)
    try:
        return await aggregator.save(session_id, body.audio_url if body else None)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SessionNotRecording as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except PersistenceFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.post("/{session_id}/reconcile", response_model=Session)
async def reconcile_session(
    session_id: UUID,
    body: ReconcileRequest | None = None,
    reconciler: BatchReconciler = Depends(get_reconciler),
) -> Session:
    try:
        return await reconciler.reconcile(session_id, body.audio_url if body else None)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SessionNotSaved as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except TranscriptionEmptyFailure as exc:
        raise HTTPException(
            status_code=422,
            detail={"reason": exc.reason, "cleanup_complete": exc.cleanup_complete},
        ) from exc
    except ReconciliationPartialFailure as exc:
        raise HTTPException(
            status_code=409,
            detail={"step": exc.step, "reason": exc.reason},
        ) from exc
    except PersistenceFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

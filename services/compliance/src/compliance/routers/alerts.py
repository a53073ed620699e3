"""
Alert reporting API router for VoxGuard.

Summarises the stored alerts of every session belonging to one owner.
Per-session alert listings live on the sessions router.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from vg_common.db.store import RecordKind, RecordStore
from vg_common.exceptions import PersistenceFailure
from vg_common.models import ComplianceAlert

from compliance.alert_stats import AlertSummary, summarize_alerts
from compliance.dependencies import get_store

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("/summary", response_model=AlertSummary)
async def owner_alert_summary(
    owner_id: str = Query(..., min_length=1),
    store: RecordStore = Depends(get_store),
) -> AlertSummary:
    try:
        sessions = await store.query(RecordKind.SESSIONS, {"owner_id": owner_id})
        if not sessions:
            return AlertSummary()
        rows = await store.query(
            RecordKind.ALERTS,
            {"session_id": [s["id"] for s in sessions]},
        )
    except PersistenceFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return summarize_alerts(ComplianceAlert.model_validate(row) for row in rows)

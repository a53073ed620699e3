"""
Compliance rule API router for VoxGuard.

Lists the loaded snapshot, triggers the manual refresh, and reports
catalogue statistics.  Rule edits themselves happen in the store; they
take effect at the next reload.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from vg_common.db.store import RecordKind, RecordStore
from vg_common.exceptions import PersistenceFailure
from vg_common.models import ComplianceRule

from compliance.dependencies import get_rule_loader, get_store
from compliance.rule_loader import RuleLoader
from compliance.rule_stats import RuleStats, compute_rule_stats
from compliance.schemas.rule_schemas import RuleReloadResponse

logger = structlog.get_logger()

router = APIRouter(prefix="/rules", tags=["rules"])


@router.get("", response_model=list[ComplianceRule])
async def list_rules(loader: RuleLoader = Depends(get_rule_loader)) -> list[ComplianceRule]:
    return list(loader.snapshot)


@router.post("/reload", response_model=RuleReloadResponse)
async def reload_rules(loader: RuleLoader = Depends(get_rule_loader)) -> RuleReloadResponse:
    changed = await loader.refresh()
    return RuleReloadResponse(
        rule_count=len(loader.snapshot),
        changed=changed,
        quarantined=loader.quarantined,
    )


@router.get("/stats", response_model=RuleStats)
async def rule_stats(store: RecordStore = Depends(get_store)) -> RuleStats:
    try:
        rows = await store.query(RecordKind.RULES, order_by="rule_code")
    except PersistenceFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    rules: list[ComplianceRule] = []
    for row in rows:
        try:
            rules.append(ComplianceRule.model_validate(row))
        except ValidationError:
            logger.warning("rule_row_invalid", rule_code=row.get("rule_code"))
    return compute_rule_stats(rules)

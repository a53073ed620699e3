"""
Ad-hoc evaluation API router for the VoxGuard compliance service.

Evaluates a piece of text against the loaded rule snapshot without
persisting anything.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from compliance.dependencies import get_rule_loader
from compliance.evaluator import evaluate
from compliance.rule_loader import RuleLoader
from compliance.schemas.rule_schemas import EvaluateRequest, EvaluateResponse, ViolationSummary

router = APIRouter(tags=["evaluate"])


@router.post("/evaluate", response_model=EvaluateResponse)
async def evaluate_text(
    body: EvaluateRequest,
    loader: RuleLoader = Depends(get_rule_loader),
) -> EvaluateResponse:
    rules = loader.snapshot
    if body.rule_codes is not None:
        wanted = set(body.rule_codes)
        rules = tuple(r for r in rules if r.rule_code in wanted)

    result = evaluate(body.text, rules, loader.matcher)
    return EvaluateResponse(
        violations=[ViolationSummary.from_violation(v) for v in result.violations],
        risk_score=result.risk_score,
        max_severity=result.max_severity,
        rules_evaluated=len(rules),
    )

"""
Rule and evaluation API schemas for the VoxGuard compliance service.

Pydantic request/response models for ad-hoc text evaluation and manual
rule reloads.  Rule statistics reuse :class:`compliance.rule_stats.RuleStats`.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from vg_common.models import ActionType, Severity, ViolationCategory

from compliance.evaluator import Violation


class ViolationSummary(BaseModel):
    rule_code: str
    rule_version: int
    rule_name: str
    category: ViolationCategory
    severity: Severity
    risk_score: int
    matched_text: str
    matched_pattern: str
    confidence: float
    primary_action: ActionType
    alert_title: str | None = None

    @classmethod
    def from_violation(cls, violation: Violation) -> ViolationSummary:
        rule = violation.rule
        return cls(
            rule_code=rule.rule_code,
            rule_version=rule.version,
            rule_name=rule.name,
            category=rule.category,
            severity=rule.severity,
            risk_score=rule.risk_score,
            matched_text=violation.matched_text,
            matched_pattern=violation.matched_pattern,
            confidence=violation.confidence,
            primary_action=rule.primary_action,
            alert_title=rule.alert_title,
        )


class EvaluateRequest(BaseModel):
    text: str = Field(..., max_length=20000)
    rule_codes: list[str] | None = Field(
        default=None,
        description="Restrict evaluation to these rule codes.",
    )


class EvaluateResponse(BaseModel):
    violations: list[ViolationSummary]
    risk_score: int
    max_severity: Severity | None = None
    rules_evaluated: int


class RuleReloadResponse(BaseModel):
    rule_count: int
    changed: bool
    quarantined: dict[str, list[str]] = Field(default_factory=dict)

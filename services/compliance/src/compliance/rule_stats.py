"""
Rule statistics for the VoxGuard compliance service.

Summarises the rule catalogue for dashboards: overall and active counts,
active rules per severity, distinct categories and jurisdictions, and
a per-(category, severity) breakdown.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable

from pydantic import BaseModel, Field

from vg_common.models import ComplianceRule, Severity, ViolationCategory


class CategoryStats(BaseModel):
    """Active rules sharing one category and severity."""

    category: ViolationCategory = Field(..., description="Violation category.")
    severity: Severity = Field(..., description="Rule severity.")
    rule_count: int = Field(default=0, ge=0, description="Number of active rules.")
    avg_risk_score: float = Field(default=0.0, ge=0.0, description="Mean risk score.")
    rule_codes: list[str] = Field(default_factory=list, description="Rule codes, sorted.")


class RuleStats(BaseModel):
    """Catalogue-wide rule statistics."""

    total_rules: int = Field(default=0, ge=0, description="All stored rules.")
    active_rules: int = Field(default=0, ge=0, description="Rules with is_active set.")
    critical_count: int = Field(default=0, ge=0, description="Active critical rules.")
    high_count: int = Field(default=0, ge=0, description="Active high rules.")
    medium_count: int = Field(default=0, ge=0, description="Active medium rules.")
    low_count: int = Field(default=0, ge=0, description="Active low rules.")
    categories_count: int = Field(default=0, ge=0, description="Distinct active categories.")
    jurisdictions_count: int = Field(
        default=0,
        ge=0,
        description="Distinct active jurisdictions.",
    )
    total_triggers: int = Field(default=0, ge=0, description="Sum of rule trigger counters.")
    by_category: list[CategoryStats] = Field(
        default_factory=list,
        description="Breakdown by category and severity.",
    )


def compute_rule_stats(rules: Iterable[ComplianceRule]) -> RuleStats:
    """Compute :class:`RuleStats` over every rule given, active or not."""
    all_rules = list(rules)
    active = [r for r in all_rules if r.is_active]

    severity_counts = {severity: 0 for severity in Severity}
    groups: dict[tuple[ViolationCategory, Severity], list[ComplianceRule]] = defaultdict(list)
    for rule in active:
        severity_counts[rule.severity] += 1
        groups[(rule.category, rule.severity)].append(rule)

    by_category = [
        CategoryStats(
            category=category,
            severity=severity,
            rule_count=len(members),
            avg_risk_score=round(sum(r.risk_score for r in members) / len(members), 2),
            rule_codes=sorted(r.rule_code for r in members),
        )
        for (category, severity), members in groups.items()
    ]
    by_category.sort(key=lambda c: (c.category.value, -c.severity.rank))

    return RuleStats(
        total_rules=len(all_rules),
        active_rules=len(active),
        critical_count=severity_counts[Severity.CRITICAL],
        high_count=severity_counts[Severity.HIGH],
        medium_count=severity_counts[Severity.MEDIUM],
        low_count=severity_counts[Severity.LOW],
        categories_count=len({r.category for r in active}),
        jurisdictions_count=len({r.jurisdiction for r in active}),
        total_triggers=sum(r.total_triggers for r in all_rules),
        by_category=by_category,
    )

"""
Alert summaries for the VoxGuard compliance service.

Counts stored alerts by severity (most severe first) and by category
(most frequent first), for one session or every session of an owner.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from pydantic import BaseModel, Field

from vg_common.models import ComplianceAlert, Severity, ViolationCategory

TOP_CATEGORIES = 10


class SeverityCount(BaseModel):
    severity: Severity
    count: int = Field(..., ge=1)


class CategoryCount(BaseModel):
    category: ViolationCategory
    count: int = Field(..., ge=1)


class AlertSummary(BaseModel):
    """Alert counts; severities and categories without alerts are omitted."""

    total_alerts: int = Field(default=0, ge=0, description="Alerts counted.")
    by_severity: list[SeverityCount] = Field(
        default_factory=list,
        description="Counts per severity, critical first.",
    )
    by_category: list[CategoryCount] = Field(
        default_factory=list,
        description="Counts per category, most frequent first.",
    )


def summarize_alerts(
    alerts: Iterable[ComplianceAlert],
    top_categories: int = TOP_CATEGORIES,
) -> AlertSummary:
    """Build an :class:`AlertSummary`.

    Args:
        alerts: Alerts to count.
        top_categories: Number of categories kept; ties are broken by name.
    """
    severities: Counter[Severity] = Counter()
    categories: Counter[ViolationCategory] = Counter()
    total = 0
    for alert in alerts:
        total += 1
        severities[alert.severity] += 1
        categories[alert.category] += 1

    by_severity = [
        SeverityCount(severity=severity, count=count)
        for severity, count in sorted(severities.items(), key=lambda kv: -kv[0].rank)
    ]
    ranked = sorted(categories.items(), key=lambda kv: (-kv[1], kv[0].value))
    by_category = [
        CategoryCount(category=category, count=count)
        for category, count in ranked[:top_categories]
    ]
    return AlertSummary(total_alerts=total, by_severity=by_severity, by_category=by_category)

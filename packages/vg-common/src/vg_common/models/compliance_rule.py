"""
Compliance rule models for VoxGuard.

A ComplianceRule is a named, versioned detection policy: an ordered list
of case-insensitive patterns, optional rule-wide exclude patterns, and
the severity and risk metadata copied onto every alert it produces.
Rules are immutable once loaded.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from vg_common.models.alert import Severity, ViolationCategory


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


class Jurisdiction(str, enum.Enum):
    """Regulatory jurisdiction a rule applies to."""

    US = "US"
    EU = "EU"
    UK = "UK"
    GLOBAL = "GLOBAL"
    US_EU = "US_EU"
    APAC = "APAC"


class ActionType(str, enum.Enum):
    """Response directive attached to a rule (opaque to matching)."""

    ALERT_ONLY = "alert_only"
    WARN_AGENT = "warn_agent"
    NOTIFY_SUPERVISOR = "notify_supervisor"
    PAUSE_RECORDING = "pause_recording"
    ESCALATE_COMPLIANCE = "escalate_compliance"
    STOP_CALL = "stop_call"
    IMMEDIATE_REVIEW = "immediate_review"
    AUTO_FLAG = "auto_flag"


class ComplianceRule(BaseModel):
    """A named detection policy.

    Attributes:
        id: Storage identifier.
        rule_code: Unique, stable rule code (e.g. ``PII-001``).
        version: Monotonic rule version.
        name: Human-readable name.
        description: Longer explanation.
        category: Violation category.
        severity: Severity copied onto alerts.
        risk_score: Additive risk contribution.
        patterns: Ordered regular expressions, first match wins.
        keywords: Display keywords (not used for matching).
        exclude_patterns: Rule-wide suppression patterns.
        jurisdiction: Regulatory jurisdiction.
        regulation_code: Regulation reference code.
        regulation_name: Regulation name.
        primary_action: Primary response directive.
        secondary_action: Secondary response directive.
        alert_title: Title shown on alerts.
        alert_message: Message shown on alerts.
        confidence_threshold: Static confidence reported on violations.
        cooldown_seconds: Suggested quiet period between alerts.
        max_alerts_per_session: Soft cap enforced by collaborators.
        min_text_length: Texts shorter than this are not evaluated.
        total_triggers: Out-of-band trigger counter.
        is_active: Only active rules are loaded.
        created_at: Creation timestamp (UTC).
        updated_at: Last update timestamp (UTC).
    """

    model_config = {"from_attributes": True, "frozen": True}

    id: UUID = Field(default_factory=uuid4, description="Storage identifier.")
    rule_code: str = Field(..., min_length=1, max_length=50, description="Unique rule code.")
    version: int = Field(default=1, ge=1, description="Monotonic rule version.")
    name: str = Field(default="", max_length=255, description="Human-readable name.")
    description: str | None = Field(default=None, description="Longer explanation.")
    category: ViolationCategory = Field(..., description="Violation category.")
    severity: Severity = Field(default=Severity.MEDIUM, description="Severity copied onto alerts.")
    risk_score: int = Field(default=0, ge=0, description="Additive risk contribution.")
    patterns: tuple[str, ...] = Field(default=(), description="Ordered match patterns.")
    keywords: tuple[str, ...] = Field(default=(), description="Display keywords.")
    exclude_patterns: tuple[str, ...] = Field(default=(), description="Suppression patterns.")
    jurisdiction: Jurisdiction = Field(default=Jurisdiction.GLOBAL, description="Jurisdiction.")
    regulation_code: str | None = Field(default=None, description="Regulation reference code.")
    regulation_name: str | None = Field(default=None, description="Regulation name.")
    primary_action: ActionType = Field(
        default=ActionType.ALERT_ONLY,
        description="Primary response directive.",
    )
    secondary_action: ActionType | None = Field(
        default=None,
        description="Secondary response directive.",
    )
    alert_title: str | None = Field(default=None, description="Alert title.")
    alert_message: str | None = Field(default=None, description="Alert message.")
    confidence_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Static confidence reported on violations.",
    )
    cooldown_seconds: int = Field(default=0, ge=0, description="Quiet period between alerts.")
    max_alerts_per_session: int = Field(
        default=10,
        ge=0,
        description="Soft cap enforced by collaborators.",
    )
    min_text_length: int = Field(default=0, ge=0, description="Minimum evaluated text length.")
    total_triggers: int = Field(default=0, ge=0, description="Out-of-band trigger counter.")
    is_active: bool = Field(default=True, description="Whether this rule is loaded.")
    created_at: datetime = Field(default_factory=_utc_now, description="Creation timestamp.")
    updated_at: datetime = Field(default_factory=_utc_now, description="Last update timestamp.")

    @field_validator("patterns", "keywords", "exclude_patterns", mode="before")
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        """Stored rules use NULL for an absent pattern list."""
        return () if value is None else value

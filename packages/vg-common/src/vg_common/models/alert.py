"""
Compliance alert data models for VoxGuard.

Defines the severity scale used for session rollups, the closed set of
violation categories, and the persisted ComplianceAlert record whose
severity and category are frozen copies of the rule at detection time.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


class Severity(str, enum.Enum):
    """Alert severity, ordered ``low < medium < high < critical``."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Ordinal position on the severity scale (``low`` is 0)."""
        return _SEVERITY_RANK[self]

    @classmethod
    def max_of(cls, *values: Severity | str | None) -> Severity | None:
        """Return the highest of *values*, ignoring ``None``.

        Returns:
            The highest severity, or ``None`` when no value is given.
        """
        present = [cls(v) for v in values if v is not None]
        if not present:
            return None
        return max(present, key=lambda s: s.rank)


_SEVERITY_RANK: dict[Severity, int] = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class ViolationCategory(str, enum.Enum):
    """Closed set of compliance violation types."""

    PROHIBITED_LANGUAGE = "prohibited_language"
    INSIDER_TRADING = "insider_trading"
    MARKET_MANIPULATION = "market_manipulation"
    PII_DISCLOSURE = "pii_disclosure"
    PCI_VIOLATION = "pci_violation"
    PHI_VIOLATION = "phi_violation"
    PRESSURE_SALES = "pressure_sales"
    UNSUITABLE_ADVICE = "unsuitable_advice"
    UNAUTHORIZED_PROMISE = "unauthorized_promise"
    CONFLICT_OF_INTEREST = "conflict_of_interest"
    OFF_CHANNEL = "off_channel"
    PROFANITY = "profanity"
    DISCRIMINATION = "discrimination"
    THREAT = "threat"
    FRAUD_INDICATOR = "fraud_indicator"


class AlertStatus(str, enum.Enum):
    """Review state of an alert (changed only by human reviewers)."""

    NEW = "new"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"


class ComplianceAlert(BaseModel):
    """One detected violation instance.

    Attributes:
        id: Unique identifier.
        session_id: Owning session.
        transcript_id: Linked transcript segment (None if not yet persisted).
        rule_code: Code of the rule that fired.
        rule_version: Version of the rule at detection time.
        category: Violation category copied from the rule.
        severity: Severity copied from the rule.
        matched_text: Substring that matched.
        matched_pattern: Pattern that produced the match.
        context_text: Full segment text around the match.
        confidence: Rule confidence threshold at detection time.
        audio_start: Segment start in seconds from session start.
        audio_end: Segment end in seconds from session start.
        speaker_id: Speaker label of the segment.
        status: Review state.
        created_at: Detection timestamp (UTC).
    """

    model_config = {"from_attributes": True}

    id: UUID = Field(default_factory=uuid4, description="Unique identifier.")
    session_id: UUID = Field(..., description="Owning session.")
    transcript_id: UUID | None = Field(default=None, description="Linked transcript segment.")
    rule_code: str = Field(..., max_length=50, description="Code of the rule that fired.")
    rule_version: int = Field(default=1, ge=1, description="Rule version at detection time.")
    category: ViolationCategory = Field(..., description="Violation category.")
    severity: Severity = Field(..., description="Severity at detection time.")
    matched_text: str = Field(..., description="Substring that matched.")
    matched_pattern: str = Field(..., description="Pattern that produced the match.")
    context_text: str | None = Field(default=None, description="Segment text around the match.")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Rule confidence.")
    audio_start: float | None = Field(default=None, ge=0.0, description="Segment start (s).")
    audio_end: float | None = Field(default=None, ge=0.0, description="Segment end (s).")
    speaker_id: str | None = Field(default=None, max_length=100, description="Speaker label.")
    status: AlertStatus = Field(default=AlertStatus.NEW, description="Review state.")
    created_at: datetime = Field(default_factory=_utc_now, description="Detection timestamp.")

"""
Shared Pydantic data models for VoxGuard.

This package contains the cross-module data models: compliance rules,
sessions, transcript messages and segments, and compliance alerts.
"""

from vg_common.models.alert import (
    AlertStatus,
    ComplianceAlert,
    Severity,
    ViolationCategory,
)
from vg_common.models.compliance_rule import ActionType, ComplianceRule, Jurisdiction
from vg_common.models.session import ReconcileStep, Session, SessionStatus
from vg_common.models.transcript import (
    BatchTranscript,
    SegmentSource,
    TokenType,
    TranscriptMessage,
    TranscriptSegment,
    TranscriptWord,
)

__all__ = [
    "ActionType",
    "AlertStatus",
    "BatchTranscript",
    "ComplianceAlert",
    "ComplianceRule",
    "Jurisdiction",
    "ReconcileStep",
    "SegmentSource",
    "Session",
    "SessionStatus",
    "Severity",
    "TokenType",
    "TranscriptMessage",
    "TranscriptSegment",
    "TranscriptWord",
    "ViolationCategory",
]

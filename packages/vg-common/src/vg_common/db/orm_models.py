"""
SQLAlchemy ORM models for VoxGuard.

Defines the table mappings for call sessions, call transcripts
(segments), compliance alerts, and compliance rules using SQLAlchemy
2.0 declarative style with ``mapped_column``.  Column names match the
Pydantic model field names so records map one-to-one.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    """Return timezone-aware UTC now for server defaults."""
    return datetime.now(timezone.utc)


# ── Base class ──


class Base(DeclarativeBase):
    """Declarative base for all VoxGuard ORM models."""


# ── Enum values (mirroring Pydantic enums) ──

SEVERITY_ENUM = Enum(
    "low", "medium", "high", "critical",
    name="severity_enum",
)
SESSION_STATUS_ENUM = Enum(
    "recording", "processing", "completed", "flagged",
    name="session_status_enum",
)
RECONCILE_STEP_ENUM = Enum(
    "not_started", "purged", "inserted", "done",
    name="reconcile_step_enum",
)
SEGMENT_SOURCE_ENUM = Enum(
    "realtime", "batch",
    name="segment_source_enum",
)
ALERT_STATUS_ENUM = Enum(
    "new", "reviewed", "resolved", "false_positive",
    name="alert_status_enum",
)
VIOLATION_CATEGORY_ENUM = Enum(
    "prohibited_language", "insider_trading", "market_manipulation",
    "pii_disclosure", "pci_violation", "phi_violation", "pressure_sales",
    "unsuitable_advice", "unauthorized_promise", "conflict_of_interest",
    "off_channel", "profanity", "discrimination", "threat", "fraud_indicator",
    name="violation_category_enum",
)
JURISDICTION_ENUM = Enum(
    "US", "EU", "UK", "GLOBAL", "US_EU", "APAC",
    name="jurisdiction_enum",
)
ACTION_TYPE_ENUM = Enum(
    "alert_only", "warn_agent", "notify_supervisor", "pause_recording",
    "escalate_compliance", "stop_call", "immediate_review", "auto_flag",
    name="action_type_enum",
)


# ── ORM models ──


class SessionORM(Base):
    """ORM model for the ``call_sessions`` table."""

    __tablename__ = "call_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        SESSION_STATUS_ENUM, nullable=False, default="recording", index=True,
    )
    total_segments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_words: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_chars: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_alerts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_severity: Mapped[str | None] = mapped_column(SEVERITY_ENUM, nullable=True)
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    batch_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reconcile_step: Mapped[str] = mapped_column(
        RECONCILE_STEP_ENUM, nullable=False, default="not_started",
    )
    audio_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)
    speakers_detected: Mapped[int | None] = mapped_column(Integer, nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now,
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now, onupdate=_utc_now,
    )


class TranscriptSegmentORM(Base):
    """ORM model for the ``call_transcripts`` table."""

    __tablename__ = "call_transcripts"

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("call_sessions.id"), nullable=False, index=True,
    )
    segment_index: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    start_time: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    end_time: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    words: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    char_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    speaker_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    has_alert: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    alert_ids: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    source: Mapped[str] = mapped_column(SEGMENT_SOURCE_ENUM, nullable=False, default="realtime")
    timestamp_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    relative_time_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    language: Mapped[str | None] = mapped_column(String(10), nullable=True)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now,
    )


class ComplianceAlertORM(Base):
    """ORM model for the ``compliance_alerts`` table."""

    __tablename__ = "compliance_alerts"

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("call_sessions.id"), nullable=False, index=True,
    )
    transcript_id: Mapped[uuid.UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("call_transcripts.id"), nullable=True,
    )
    rule_code: Mapped[str] = mapped_column(String(50), nullable=False)
    rule_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    category: Mapped[str] = mapped_column(VIOLATION_CATEGORY_ENUM, nullable=False)
    severity: Mapped[str] = mapped_column(SEVERITY_ENUM, nullable=False)
    matched_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    matched_pattern: Mapped[str] = mapped_column(Text, nullable=False, default="")
    context_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    audio_start: Mapped[float | None] = mapped_column(Float, nullable=True)
    audio_end: Mapped[float | None] = mapped_column(Float, nullable=True)
    speaker_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(ALERT_STATUS_ENUM, nullable=False, default="new")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now,
    )


class ComplianceRuleORM(Base):
    """ORM model for the ``compliance_rules`` table."""

    __tablename__ = "compliance_rules"

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    rule_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(VIOLATION_CATEGORY_ENUM, nullable=False)
    severity: Mapped[str] = mapped_column(SEVERITY_ENUM, nullable=False, default="medium")
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    patterns: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    keywords: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    exclude_patterns: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    jurisdiction: Mapped[str] = mapped_column(JURISDICTION_ENUM, nullable=False, default="GLOBAL")
    regulation_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    regulation_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    primary_action: Mapped[str] = mapped_column(
        ACTION_TYPE_ENUM, nullable=False, default="alert_only",
    )
    secondary_action: Mapped[str | None] = mapped_column(ACTION_TYPE_ENUM, nullable=True)
    alert_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    alert_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    confidence_threshold: Mapped[float] = mapped_column(Float, nullable=False, default=0.8)
    cooldown_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_alerts_per_session: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    min_text_length: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_triggers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now, onupdate=_utc_now,
    )

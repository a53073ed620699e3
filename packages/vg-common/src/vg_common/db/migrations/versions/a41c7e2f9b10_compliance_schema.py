"""compliance schema

Revision ID: a41c7e2f9b10
Revises:
Create Date: 2026-10-19 09:12:44.180233

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "a41c7e2f9b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Custom enum types (created explicitly, referenced with create_type=False)
severity_enum = postgresql.ENUM(
    "low", "medium", "high", "critical",
    name="severity_enum", create_type=False,
)
session_status_enum = postgresql.ENUM(
    "recording", "processing", "completed", "flagged",
    name="session_status_enum", create_type=False,
)
reconcile_step_enum = postgresql.ENUM(
    "not_started", "purged", "inserted", "done",
    name="reconcile_step_enum", create_type=False,
)
segment_source_enum = postgresql.ENUM(
    "realtime", "batch",
    name="segment_source_enum", create_type=False,
)
alert_status_enum = postgresql.ENUM(
    "new", "reviewed", "resolved", "false_positive",
    name="alert_status_enum", create_type=False,
)
violation_category_enum = postgresql.ENUM(
    "prohibited_language", "insider_trading", "market_manipulation",
    "pii_disclosure", "pci_violation", "phi_violation", "pressure_sales",
    "unsuitable_advice", "unauthorized_promise", "conflict_of_interest",
    "off_channel", "profanity", "discrimination", "threat", "fraud_indicator",
    name="violation_category_enum", create_type=False,
)
jurisdiction_enum = postgresql.ENUM(
    "US", "EU", "UK", "GLOBAL", "US_EU", "APAC",
    name="jurisdiction_enum", create_type=False,
)
action_type_enum = postgresql.ENUM(
    "alert_only", "warn_agent", "notify_supervisor", "pause_recording",
    "escalate_compliance", "stop_call", "immediate_review", "auto_flag",
    name="action_type_enum", create_type=False,
)

_ALL_ENUMS = (
    severity_enum,
    session_status_enum,
    reconcile_step_enum,
    segment_source_enum,
    alert_status_enum,
    violation_category_enum,
    jurisdiction_enum,
    action_type_enum,
)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in _ALL_ENUMS:
        enum_type.create(bind, checkfirst=True)

    # call_sessions
    op.create_table(
        "call_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("status", session_status_enum, nullable=False, server_default="recording"),
        sa.Column("total_segments", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_words", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_chars", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_alerts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_severity", severity_enum, nullable=True),
        sa.Column("risk_score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("batch_processed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "reconcile_step", reconcile_step_enum, nullable=False, server_default="not_started",
        ),
        sa.Column("audio_url", sa.Text, nullable=True),
        sa.Column("duration_seconds", sa.Float, nullable=True),
        sa.Column("speakers_detected", sa.Integer, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_call_sessions_owner_id", "call_sessions", ["owner_id"])
    op.create_index("ix_call_sessions_status", "call_sessions", ["status"])

    # call_transcripts
    op.create_table(
        "call_transcripts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "session_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("call_sessions.id"),
            nullable=False,
        ),
        sa.Column("segment_index", sa.Integer, nullable=False),
        sa.Column("text", sa.Text, nullable=False),
        sa.Column("start_time", sa.Float, nullable=False, server_default="0"),
        sa.Column("end_time", sa.Float, nullable=False, server_default="0"),
        sa.Column("words", postgresql.JSONB, nullable=True),
        sa.Column("word_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("char_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("speaker_id", sa.String(100), nullable=True),
        sa.Column("has_alert", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("alert_ids", postgresql.JSONB, nullable=True),
        sa.Column("source", segment_source_enum, nullable=False, server_default="realtime"),
        sa.Column("timestamp_ms", sa.BigInteger, nullable=True),
        sa.Column("relative_time_ms", sa.BigInteger, nullable=True),
        sa.Column("language", sa.String(10), nullable=True),
        sa.Column("confidence", sa.Float, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_call_transcripts_session_id", "call_transcripts", ["session_id"])

    # compliance_alerts
    op.create_table(
        "compliance_alerts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "session_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("call_sessions.id"),
            nullable=False,
        ),
        sa.Column(
            "transcript_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("call_transcripts.id"),
            nullable=True,
        ),
        sa.Column("rule_code", sa.String(50), nullable=False),
        sa.Column("rule_version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("category", violation_category_enum, nullable=False),
        sa.Column("severity", severity_enum, nullable=False),
        sa.Column("matched_text", sa.Text, nullable=False, server_default=""),
        sa.Column("matched_pattern", sa.Text, nullable=False, server_default=""),
        sa.Column("context_text", sa.Text, nullable=True),
        sa.Column("confidence", sa.Float, nullable=False, server_default="0"),
        sa.Column("audio_start", sa.Float, nullable=True),
        sa.Column("audio_end", sa.Float, nullable=True),
        sa.Column("speaker_id", sa.String(100), nullable=True),
        sa.Column("status", alert_status_enum, nullable=False, server_default="new"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_compliance_alerts_session_id", "compliance_alerts", ["session_id"])

    # compliance_rules
    op.create_table(
        "compliance_rules",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("rule_code", sa.String(50), nullable=False, unique=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category", violation_category_enum, nullable=False),
        sa.Column("severity", severity_enum, nullable=False, server_default="medium"),
        sa.Column("risk_score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("patterns", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("keywords", postgresql.JSONB, nullable=True),
        sa.Column("exclude_patterns", postgresql.JSONB, nullable=True),
        sa.Column("jurisdiction", jurisdiction_enum, nullable=False, server_default="GLOBAL"),
        sa.Column("regulation_code", sa.String(100), nullable=True),
        sa.Column("regulation_name", sa.String(255), nullable=True),
        sa.Column("primary_action", action_type_enum, nullable=False, server_default="alert_only"),
        sa.Column("secondary_action", action_type_enum, nullable=True),
        sa.Column("alert_title", sa.String(255), nullable=True),
        sa.Column("alert_message", sa.Text, nullable=True),
        sa.Column("confidence_threshold", sa.Float, nullable=False, server_default="0.8"),
        sa.Column("cooldown_seconds", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_alerts_per_session", sa.Integer, nullable=False, server_default="10"),
        sa.Column("min_text_length", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_triggers", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_compliance_rules_is_active", "compliance_rules", ["is_active"])


def downgrade() -> None:
    op.drop_table("compliance_rules")
    op.drop_table("compliance_alerts")
    op.drop_table("call_transcripts")
    op.drop_table("call_sessions")

    bind = op.get_bind()
    for enum_type in reversed(_ALL_ENUMS):
        enum_type.drop(bind, checkfirst=True)

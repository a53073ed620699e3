"""
Session API schemas for the VoxGuard compliance service.

Pydantic request/response models for starting sessions, ingesting
streaming messages, saving recordings, and batch reconciliation.
Session bodies are returned as :class:`vg_common.models.Session`.
"""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field

from vg_common.models import Session, Severity

from compliance.schemas.rule_schemas import ViolationSummary


class SessionCreateRequest(BaseModel):
    owner_id: str = Field(..., min_length=1, max_length=255)
    title: str | None = Field(default=None, max_length=255)


class MessageIngestResponse(BaseModel):
    session_id: UUID
    violations: list[ViolationSummary]
    max_severity: Severity | None = None


class SaveRequest(BaseModel):
    audio_url: str | None = None


class ReconcileRequest(BaseModel):
    audio_url: str | None = None


class StuckSessionsResponse(BaseModel):
    sessions: list[Session]
    total: int

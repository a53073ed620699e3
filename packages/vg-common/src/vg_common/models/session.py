"""
Recording session model for VoxGuard.

A Session is one recording or call instance with the denormalized
rollups the compliance engine maintains: segment/word/char totals, alert
count, highest severity, and aggregate risk score.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from vg_common.models.alert import Severity


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


class SessionStatus(str, enum.Enum):
    """Session lifecycle state."""

    RECORDING = "recording"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FLAGGED = "flagged"


class ReconcileStep(str, enum.Enum):
    """Last completed step of batch reconciliation."""

    NOT_STARTED = "not_started"
    PURGED = "purged"
    INSERTED = "inserted"
    DONE = "done"


class Session(BaseModel):
    """A recording session with its compliance rollups.

    Attributes:
        id: Unique identifier.
        owner_id: Owning user; also the audio artifact key prefix.
        title: Display title.
        status: Lifecycle state.
        total_segments: Number of persisted segments.
        total_words: Number of words across segments.
        total_chars: Number of characters across segments.
        total_alerts: Number of persisted alerts.
        max_severity: Highest alert severity seen (None = no alerts).
        risk_score: Aggregate risk score.
        batch_processed: True once batch reconciliation completed.
        reconcile_step: Reconciliation cursor.
        audio_url: Location of the uploaded recording.
        duration_seconds: Transcript duration, set on completion.
        speakers_detected: Number of distinct speakers in the batch pass.
        started_at: Recording start (UTC).
        ended_at: Completion time (UTC).
        updated_at: Last modification (UTC).
    """

    model_config = {"from_attributes": True}

    id: UUID = Field(default_factory=uuid4, description="Unique identifier.")
    owner_id: str = Field(..., min_length=1, max_length=255, description="Owning user.")
    title: str | None = Field(default=None, max_length=255, description="Display title.")
    status: SessionStatus = Field(default=SessionStatus.RECORDING, description="Lifecycle state.")
    total_segments: int = Field(default=0, ge=0, description="Persisted segment count.")
    total_words: int = Field(default=0, ge=0, description="Word count.")
    total_chars: int = Field(default=0, ge=0, description="Character count.")
    total_alerts: int = Field(default=0, ge=0, description="Persisted alert count.")
    max_severity: Severity | None = Field(default=None, description="Highest alert severity.")
    risk_score: int = Field(default=0, ge=0, description="Aggregate risk score.")
    batch_processed: bool = Field(default=False, description="Batch reconciliation done.")
    reconcile_step: ReconcileStep = Field(
        default=ReconcileStep.NOT_STARTED,
        description="Reconciliation cursor.",
    )
    audio_url: str | None = Field(default=None, description="Recording location.")
    duration_seconds: float | None = Field(default=None, ge=0.0, description="Duration (s).")
    speakers_detected: int | None = Field(default=None, ge=0, description="Distinct speakers.")
    started_at: datetime = Field(default_factory=_utc_now, description="Recording start.")
    ended_at: datetime | None = Field(default=None, description="Completion time.")
    updated_at: datetime = Field(default_factory=_utc_now, description="Last modification.")

    @model_validator(mode="after")
    def _ensure_utc_timestamps(self) -> Session:
        """Ensure all timestamps carry UTC timezone info."""
        if self.started_at.tzinfo is None:
            self.started_at = self.started_at.replace(tzinfo=timezone.utc)
        if self.updated_at.tzinfo is None:
            self.updated_at = self.updated_at.replace(tzinfo=timezone.utc)
        if self.ended_at is not None and self.ended_at.tzinfo is None:
            self.ended_at = self.ended_at.replace(tzinfo=timezone.utc)
        return self

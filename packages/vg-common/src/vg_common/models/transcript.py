"""
Transcript data models for VoxGuard.

Defines the word/token shape shared by the streaming and batch
transcription sources, the TranscriptMessage delivered by the streaming
source (text-only draft first, then the timed version with words), the
BatchTranscript returned by re-transcription, and the persisted
TranscriptSegment.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


class TokenType(str, enum.Enum):
    """Kind of token in a word-level transcript."""

    WORD = "word"
    SPACING = "spacing"
    AUDIO_EVENT = "audio_event"


class SegmentSource(str, enum.Enum):
    """Which transcription pass produced a segment."""

    REALTIME = "realtime"
    BATCH = "batch"


class TranscriptWord(BaseModel):
    """A single token with timing.

    Attributes:
        text: Token text (a word, or whitespace for spacing tokens).
        start: Start time in seconds.
        end: End time in seconds.
        type: Token kind.
        speaker_id: Diarized speaker label, if any.
    """

    model_config = {"from_attributes": True}

    text: str = Field(..., description="Token text.")
    start: float = Field(default=0.0, ge=0.0, description="Start time in seconds.")
    end: float = Field(default=0.0, ge=0.0, description="End time in seconds.")
    type: TokenType = Field(default=TokenType.WORD, description="Token kind.")
    speaker_id: str | None = Field(default=None, description="Speaker label.")

    @property
    def is_word(self) -> bool:
        return self.type == TokenType.WORD


class TranscriptMessage(BaseModel):
    """One delivery from the streaming transcription source.

    Each utterance is delivered twice under the same ``id``: first as a
    draft without words, then timed with word-level timestamps.

    Attributes:
        id: Utterance identifier assigned by the source.
        text: Transcribed text.
        words: Word-level timing (empty for drafts).
        language: Detected language code.
        confidence: Source confidence (0.0–1.0).
        timestamp: Wall-clock arrival time in epoch milliseconds.
        segment_index: Explicit utterance order, if the source provides one.
    """

    id: str = Field(..., min_length=1, description="Utterance identifier.")
    text: str = Field(default="", description="Transcribed text.")
    words: list[TranscriptWord] = Field(default_factory=list, description="Word-level timing.")
    language: str | None = Field(default=None, max_length=10, description="Language code.")
    confidence: float | None = Field(default=None, ge=0.0, le=1.0, description="Confidence.")
    timestamp: int = Field(..., ge=0, description="Arrival time (epoch ms).")
    segment_index: int | None = Field(default=None, ge=0, description="Explicit order.")

    @property
    def is_timed(self) -> bool:
        """True once the message carries word-level timing."""
        return len(self.words) > 0


class BatchTranscript(BaseModel):
    """Flat, time-ordered word list returned by batch transcription."""

    words: list[TranscriptWord] = Field(default_factory=list, description="Time-ordered tokens.")
    language_code: str | None = Field(default=None, description="Detected language.")

    @property
    def duration(self) -> float:
        """Transcript duration: the latest token end time, or 0."""
        return max((w.end for w in self.words), default=0.0)

    @property
    def word_count(self) -> int:
        return sum(1 for w in self.words if w.is_word)


class TranscriptSegment(BaseModel):
    """A persisted unit of spoken text with timing.

    Attributes:
        id: Unique identifier.
        session_id: Owning session.
        segment_index: 0-based order within the session.
        text: Segment text.
        start_time: Start in seconds from session start.
        end_time: End in seconds from session start.
        words: Word-level timing.
        word_count: Number of word tokens.
        char_count: Number of characters in ``text``.
        speaker_id: Speaker label.
        has_alert: True once an alert links to this segment.
        alert_ids: Linked alert ids.
        source: Producing transcription pass.
        timestamp_ms: Wall-clock arrival time (realtime only).
        relative_time_ms: Offset from the session's first segment.
        language: Detected language code.
        confidence: Source confidence.
        created_at: Storage timestamp (UTC).
    """

    model_config = {"from_attributes": True}

    id: UUID = Field(default_factory=uuid4, description="Unique identifier.")
    session_id: UUID = Field(..., description="Owning session.")
    segment_index: int = Field(..., ge=0, description="0-based order within the session.")
    text: str = Field(..., description="Segment text.")
    start_time: float = Field(default=0.0, ge=0.0, description="Start (s).")
    end_time: float = Field(default=0.0, ge=0.0, description="End (s).")
    words: list[TranscriptWord] = Field(default_factory=list, description="Word timing.")
    word_count: int = Field(default=0, ge=0, description="Word token count.")
    char_count: int = Field(default=0, ge=0, description="Character count.")
    speaker_id: str | None = Field(default=None, max_length=100, description="Speaker label.")
    has_alert: bool = Field(default=False, description="Linked to an alert.")
    alert_ids: list[UUID] = Field(default_factory=list, description="Linked alert ids.")
    source: SegmentSource = Field(default=SegmentSource.REALTIME, description="Producing pass.")
    timestamp_ms: int | None = Field(default=None, ge=0, description="Arrival time (epoch ms).")
    relative_time_ms: int | None = Field(default=None, description="Offset from first segment.")
    language: str | None = Field(default=None, max_length=10, description="Language code.")
    confidence: float | None = Field(default=None, ge=0.0, le=1.0, description="Confidence.")
    created_at: datetime = Field(default_factory=_utc_now, description="Storage timestamp.")

"""
Tests for vg-common Pydantic data models.

Covers severity ordering, rule immutability and list coercion, the
draft/timed distinction on transcript messages, batch transcript
duration, and timestamp normalisation on sessions.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError

from vg_common.models import (
    BatchTranscript,
    ComplianceAlert,
    ComplianceRule,
    ReconcileStep,
    Session,
    SessionStatus,
    Severity,
    TokenType,
    TranscriptMessage,
    TranscriptWord,
    ViolationCategory,
)


# ---------------------------------------------------------------------------
# Severity
# ---------------------------------------------------------------------------


class TestSeverity:

    def test_rank_order(self) -> None:
        ranks = [s.rank for s in (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == 4

    def test_max_of_picks_highest(self) -> None:
        assert Severity.max_of(Severity.LOW, Severity.CRITICAL, Severity.HIGH) == Severity.CRITICAL

    def test_max_of_ignores_none(self) -> None:
        assert Severity.max_of(None, Severity.MEDIUM, None) == Severity.MEDIUM

    def test_max_of_accepts_strings(self) -> None:
        assert Severity.max_of("high", Severity.LOW) == Severity.HIGH

    def test_max_of_empty(self) -> None:
        assert Severity.max_of() is None
        assert Severity.max_of(None) is None


# ---------------------------------------------------------------------------
# ComplianceRule
# ---------------------------------------------------------------------------


class TestComplianceRule:

    def test_none_pattern_lists_become_empty(self) -> None:
        rule = ComplianceRule(
            rule_code="X-1",
            category=ViolationCategory.PROFANITY,
            patterns=None,
            exclude_patterns=None,
            keywords=None,
        )
        assert rule.patterns == ()
        assert rule.exclude_patterns == ()
        assert rule.keywords == ()

    def test_lists_are_stored_as_tuples(self) -> None:
        rule = ComplianceRule(
            rule_code="X-1",
            category=ViolationCategory.PROFANITY,
            patterns=["a", "b"],
        )
        assert rule.patterns == ("a", "b")

    def test_frozen(self) -> None:
        rule = ComplianceRule(rule_code="X-1", category=ViolationCategory.PROFANITY)
        with pytest.raises(ValidationError):
            rule.severity = Severity.HIGH  # type: ignore[misc]

    def test_defaults(self) -> None:
        rule = ComplianceRule(rule_code="X-1", category=ViolationCategory.THREAT)
        assert rule.version == 1
        assert rule.confidence_threshold == pytest.approx(0.8)
        assert rule.is_active is True
        assert rule.min_text_length == 0

    def test_confidence_out_of_range(self) -> None:
        with pytest.raises(ValidationError):
            ComplianceRule(
                rule_code="X-1",
                category=ViolationCategory.THREAT,
                confidence_threshold=1.5,
            )

    def test_unknown_category_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ComplianceRule(rule_code="X-1", category="gossip")  # type: ignore[arg-type]

    def test_version_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ComplianceRule(rule_code="X-1", category=ViolationCategory.THREAT, version=0)


# ---------------------------------------------------------------------------
# Transcript models
# ---------------------------------------------------------------------------


class TestTranscriptModels:

    def test_draft_is_not_timed(self) -> None:
        msg = TranscriptMessage(id="u1", text="hello there", timestamp=1000)
        assert msg.is_timed is False

    def test_message_with_words_is_timed(self) -> None:
        msg = TranscriptMessage(
            id="u1",
            text="hello",
            timestamp=1000,
            words=[TranscriptWord(text="hello", start=0.1, end=0.4)],
        )
        assert msg.is_timed is True

    def test_word_kinds(self) -> None:
        assert TranscriptWord(text="hi").is_word is True
        assert TranscriptWord(text=" ", type=TokenType.SPACING).is_word is False
        assert TranscriptWord(text="(laughs)", type=TokenType.AUDIO_EVENT).is_word is False

    def test_batch_duration_is_last_end(self) -> None:
        transcript = BatchTranscript(
            words=[
                TranscriptWord(text="a", start=0.0, end=0.3),
                TranscriptWord(text=" ", start=0.3, end=0.35, type=TokenType.SPACING),
                TranscriptWord(text="b", start=0.35, end=1.2),
            ]
        )
        assert transcript.duration == pytest.approx(1.2)
        assert transcript.word_count == 2

    def test_empty_batch(self) -> None:
        transcript = BatchTranscript.model_validate({"words": []})
        assert transcript.duration == 0.0
        assert transcript.word_count == 0

    def test_batch_ignores_unknown_fields(self) -> None:
        transcript = BatchTranscript.model_validate(
            {
                "language_code": "en",
                "language_probability": 0.99,
                "text": "hi",
                "words": [
                    {"text": "hi", "start": 0.0, "end": 0.6, "type": "word",
                     "speaker_id": "speaker_0", "logprob": -0.1},
                ],
            }
        )
        assert transcript.words[0].speaker_id == "speaker_0"


# ---------------------------------------------------------------------------
# Session & alert
# ---------------------------------------------------------------------------


class TestSession:

    def test_defaults(self) -> None:
        session = Session(owner_id="user-1")
        assert session.status == SessionStatus.RECORDING
        assert session.reconcile_step == ReconcileStep.NOT_STARTED
        assert session.max_severity is None
        assert session.total_alerts == 0

    def test_naive_timestamps_become_utc(self) -> None:
        naive = datetime(2025, 1, 1, 12, 0, 0)
        session = Session(owner_id="u", started_at=naive, updated_at=naive, ended_at=naive)
        assert session.started_at.tzinfo is timezone.utc
        assert session.updated_at.tzinfo is timezone.utc
        assert session.ended_at is not None and session.ended_at.tzinfo is timezone.utc

    def test_owner_required(self) -> None:
        with pytest.raises(ValidationError):
            Session(owner_id="")


class TestComplianceAlert:

    def test_severity_from_string(self) -> None:
        alert = ComplianceAlert(
            session_id=uuid4(),
            rule_code="PII-001",
            category="pii_disclosure",
            severity="critical",
            matched_text="123-45-6789",
            matched_pattern=r"\d{3}-\d{2}-\d{4}",
        )
        assert alert.severity == Severity.CRITICAL
        assert alert.transcript_id is None

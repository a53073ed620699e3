"""
Per-session segment lifecycle tracker for VoxGuard.

The streaming transcription source delivers every utterance twice under
the same id: a text-only draft, then a timed version carrying word-level
timestamps.  The tracker models that explicitly (draft → timed) and
releases only timed segments, in utterance order, each at most once.

Utterance order comes from an explicit ``segment_index`` when the source
provides one, otherwise from the order in which an utterance id was
first seen.  A timed utterance that arrives ahead of an earlier one is
held back until every earlier utterance is timed or flushed.

Released text shorter than the configured minimum, or repeating recent
text, is dropped here so the evaluator never sees it.
"""

from __future__ import annotations

import enum
from collections import deque
from dataclasses import dataclass

import structlog

from vg_common.config import get_settings
from vg_common.models import TranscriptMessage, TranscriptWord

logger = structlog.get_logger()


class UtteranceState(str, enum.Enum):
    """Delivery state of one utterance."""

    DRAFT = "draft"
    TIMED = "timed"
    RELEASED = "released"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TrackedSegment:
    """A timed segment released for evaluation and persistence.

    Attributes:
        message_id: Utterance id assigned by the transcription source.
        segment_index: Contiguous 0-based index over released segments.
        text: Stripped segment text.
        words: Word-level timing.
        start_time: First word start (s), or the relative time fallback.
        end_time: Last word end (s), or the relative time fallback.
        speaker_id: Speaker of the first word that carries one.
        timestamp_ms: Arrival time of the timed delivery (epoch ms).
        relative_time_ms: Offset from the session's first released segment.
        language: Detected language code.
        confidence: Source confidence.
    """

    message_id: str
    segment_index: int
    text: str
    words: tuple[TranscriptWord, ...]
    start_time: float
    end_time: float
    speaker_id: str | None
    timestamp_ms: int
    relative_time_ms: int
    language: str | None = None
    confidence: float | None = None

    @property
    def word_count(self) -> int:
        return sum(1 for w in self.words if w.is_word)

    @property
    def char_count(self) -> int:
        return len(self.text)


class SegmentTracker:
    """Orders, filters, and releases timed segments for one session.

    Args:
        min_chars: Shortest stripped text released.  Falls back to
            ``Settings.min_segment_chars``.
        duplicate_window_s: Repeated text within this window is dropped.
            Falls back to ``Settings.duplicate_window_s``.
    """

    def __init__(
        self,
        min_chars: int | None = None,
        duplicate_window_s: float | None = None,
    ) -> None:
        settings = get_settings()
        self._min_chars = settings.min_segment_chars if min_chars is None else min_chars
        window_s = settings.duplicate_window_s if duplicate_window_s is None else duplicate_window_s
        self._duplicate_window_ms = int(window_s * 1000)

        self._order: dict[str, int] = {}
        self._state: dict[int, UtteranceState] = {}
        self._timed: dict[int, TranscriptMessage] = {}
        self._next_order = 0
        self._cursor = 0

        self._released_ids: set[str] = set()
        self._recent: deque[tuple[str, int]] = deque()
        self._last_text: str | None = None
        self._base_ms: int | None = None
        self._released_count = 0

    # ── inspection ──

    @property
    def time_base_ms(self) -> int | None:
        """Arrival time of the first released segment."""
        return self._base_ms

    @property
    def pending_count(self) -> int:
        """Timed utterances held back behind an earlier untimed one."""
        return len(self._timed)

    def state_of(self, message_id: str) -> UtteranceState | None:
        index = self._order.get(message_id)
        return None if index is None else self._state.get(index)

    # ── lifecycle ──

    def observe(self, message: TranscriptMessage) -> list[TrackedSegment]:
        """Record one delivery and return any segments now ready, in order."""
        index = self._index_for(message)
        state = self._state.get(index)

        if state in (UtteranceState.RELEASED, UtteranceState.SKIPPED):
            logger.debug("segment_redelivered", message_id=message.id, index=index)
            return []
        if index < self._cursor:
            logger.warning("segment_arrived_late", message_id=message.id, index=index)
            self._state[index] = UtteranceState.SKIPPED
            return []
        if not message.is_timed:
            self._state.setdefault(index, UtteranceState.DRAFT)
            return []

        self._state[index] = UtteranceState.TIMED
        self._timed[index] = message
        return self._release_ready()

    def flush(self) -> list[TrackedSegment]:
        """Release every held-back timed segment, skipping untimed gaps.

        Called when recording stops: drafts that never got timing are
        abandoned so the segments behind them can be persisted.
        """
        released: list[TrackedSegment] = []
        for index in sorted(self._timed):
            if index not in self._timed or index < self._cursor:
                continue
            for gap in range(self._cursor, index):
                if self._state.get(gap) in (None, UtteranceState.DRAFT):
                    self._state[gap] = UtteranceState.SKIPPED
            self._cursor = index
            released.extend(self._release_ready())
        if self._cursor < self._next_order:
            for gap in range(self._cursor, self._next_order):
                if self._state.get(gap) == UtteranceState.DRAFT:
                    self._state[gap] = UtteranceState.SKIPPED
            self._cursor = self._next_order
        return released

    # ── internals ──

    def _index_for(self, message: TranscriptMessage) -> int:
        if message.segment_index is not None:
            index = message.segment_index
            self._order.setdefault(message.id, index)
            self._next_order = max(self._next_order, index + 1)
            return index
        if message.id not in self._order:
            self._order[message.id] = self._next_order
            self._next_order += 1
        return self._order[message.id]

    def _release_ready(self) -> list[TrackedSegment]:
        released: list[TrackedSegment] = []
        while True:
            state = self._state.get(self._cursor)
            if state == UtteranceState.SKIPPED:
                self._cursor += 1
                continue
            if state != UtteranceState.TIMED:
                break
            message = self._timed.pop(self._cursor)
            segment = self._accept(message)
            if segment is None:
                self._state[self._cursor] = UtteranceState.SKIPPED
            else:
                self._state[self._cursor] = UtteranceState.RELEASED
                released.append(segment)
            self._cursor += 1
        return released

    def _accept(self, message: TranscriptMessage) -> TrackedSegment | None:
        text = message.text.strip()
        if message.id in self._released_ids:
            return None
        if len(text) < self._min_chars:
            logger.debug("segment_too_short", message_id=message.id, length=len(text))
            return None
        if self._is_duplicate(text, message.timestamp):
            logger.info("segment_duplicate_skipped", message_id=message.id)
            return None

        if self._base_ms is None:
            self._base_ms = message.timestamp
        relative_ms = message.timestamp - self._base_ms

        timed_words = [w for w in message.words if w.end > 0 or w.start > 0]
        if timed_words:
            start_time = timed_words[0].start
            end_time = max(w.end for w in timed_words)
        else:
            start_time = end_time = max(relative_ms, 0) / 1000.0
        speaker = next((w.speaker_id for w in message.words if w.speaker_id), None)

        segment = TrackedSegment(
            message_id=message.id,
            segment_index=self._released_count,
            text=text,
            words=tuple(message.words),
            start_time=start_time,
            end_time=end_time,
            speaker_id=speaker,
            timestamp_ms=message.timestamp,
            relative_time_ms=relative_ms,
            language=message.language,
            confidence=message.confidence,
        )
        self._released_count += 1
        self._released_ids.add(message.id)
        self._last_text = text
        self._recent.append((text, message.timestamp))
        return segment

    def _is_duplicate(self, text: str, timestamp_ms: int) -> bool:
        if self._last_text is not None and text == self._last_text:
            return True
        while self._recent and timestamp_ms - self._recent[0][1] >= self._duplicate_window_ms:
            self._recent.popleft()
        return any(
            seen == text and abs(timestamp_ms - at) < self._duplicate_window_ms
            for seen, at in self._recent
        )

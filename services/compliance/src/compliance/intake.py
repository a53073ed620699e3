"""
Redis stream intake for the VoxGuard compliance service.

One consumer task per recording session reads transcription messages
from ``transcripts:{session_id}``, feeds them to the session aggregator,
and publishes any live violations to ``violations:{session_id}``.
"""

from __future__ import annotations

import asyncio
from uuid import UUID

import structlog
from pydantic import ValidationError

from vg_common.exceptions import SessionNotFound, SessionNotRecording
from vg_common.messaging import RedisClient
from vg_common.models import TranscriptMessage

from compliance.evaluator import Violation
from compliance.session_aggregator import SessionAggregator

logger = structlog.get_logger()


def violation_event(session_id: UUID, message_id: str, violation: Violation) -> dict:
    """Payload published for one live violation."""
    rule = violation.rule
    return {
        "session_id": str(session_id),
        "message_id": message_id,
        "rule_code": rule.rule_code,
        "rule_name": rule.name,
        "category": rule.category.value,
        "severity": rule.severity.value,
        "risk_score": rule.risk_score,
        "matched_text": violation.matched_text,
        "matched_pattern": violation.matched_pattern,
        "confidence": violation.confidence,
        "primary_action": rule.primary_action.value,
        "alert_title": rule.alert_title,
        "alert_message": rule.alert_message,
    }


class StreamIntake:
    """Per-session consumers of the transcript streams.

    Args:
        redis: Connected Redis client.
        aggregator: Receives every decoded message.
        block_ms: XREAD block time; bounds how long ``stop`` waits.
    """

    def __init__(
        self,
        redis: RedisClient,
        aggregator: SessionAggregator,
        block_ms: int = 1000,
    ) -> None:
        self._redis = redis
        self._aggregator = aggregator
        self._block_ms = block_ms
        self._tasks: dict[UUID, tuple[asyncio.Task[None], asyncio.Event]] = {}

    @property
    def running(self) -> list[UUID]:
        return [sid for sid, (task, _) in self._tasks.items() if not task.done()]

    def start(self, session_id: UUID) -> bool:
        """Start consuming a session's stream.  Returns ``False`` if already running."""
        existing = self._tasks.get(session_id)
        if existing is not None and not existing[0].done():
            return False
        stop = asyncio.Event()
        task = asyncio.create_task(self._consume(session_id, stop), name=f"intake:{session_id}")
        self._tasks[session_id] = (task, stop)
        task.add_done_callback(lambda done: self._forget(session_id, done))
        logger.info("intake_started", session_id=str(session_id))
        return True

    async def stop(self, session_id: UUID) -> None:
        """Signal the consumer to stop and wait for its current message."""
        entry = self._tasks.pop(session_id, None)
        if entry is None:
            return
        task, stop = entry
        stop.set()
        await task
        logger.info("intake_stopped", session_id=str(session_id))

    async def stop_all(self) -> None:
        for session_id in list(self._tasks):
            await self.stop(session_id)

    def _forget(self, session_id: UUID, task: asyncio.Task[None]) -> None:
        entry = self._tasks.get(session_id)
        if entry is not None and entry[0] is task:
            del self._tasks[session_id]

    async def _consume(self, session_id: UUID, stop: asyncio.Event) -> None:
        sid = str(session_id)
        last_id = "0"
        while not stop.is_set():
            try:
                entries = await self._redis.read_transcripts(
                    sid, last_id, count=10, block=self._block_ms
                )
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("intake_read_error", session_id=sid)
                await asyncio.sleep(1.0)
                continue

            for entry_id, data in entries:
                last_id = entry_id
                try:
                    await self._handle(session_id, data)
                except (SessionNotFound, SessionNotRecording) as exc:
                    logger.info("intake_session_ended", session_id=sid, reason=str(exc))
                    return
                except ValidationError as exc:
                    logger.warning(
                        "intake_message_invalid",
                        session_id=sid,
                        entry_id=entry_id,
                        error=str(exc),
                    )
                except Exception:
                    logger.exception("intake_message_error", session_id=sid, entry_id=entry_id)

    async def _handle(self, session_id: UUID, data: str | None) -> None:
        message = TranscriptMessage.model_validate_json(data or "{}")
        violations = await self._aggregator.ingest(session_id, message)
        for violation in violations:
            await self._redis.publish_violation(
                str(session_id), violation_event(session_id, message.id, violation)
            )

"""
Exception hierarchy for VoxGuard.

Every failure the compliance engine reports derives from
:class:`VoxGuardError` so callers can catch the whole family at once.
"""

from __future__ import annotations


class VoxGuardError(Exception):
    """Base exception for VoxGuard."""


class RuleLoadFailure(VoxGuardError):
    """Raised when compliance rules cannot be read from storage."""


class PatternCompileFailure(VoxGuardError):
    """Raised when a rule pattern is not a valid regular expression."""

    def __init__(self, rule_code: str, pattern: str, reason: str = "") -> None:
        self.rule_code = rule_code
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"rule {rule_code}: cannot compile {pattern!r}: {reason}")


class PersistenceFailure(VoxGuardError):
    """Raised when a record-store operation fails."""

    def __init__(self, kind: str, operation: str, reason: str = "") -> None:
        self.kind = kind
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} on {kind} failed: {reason}")


class BatchTranscriptionError(VoxGuardError):
    """Raised when the batch transcription service cannot be reached or errors."""


class TranscriptionEmptyFailure(VoxGuardError):
    """Raised when a batch transcript has no usable words.

    The session has been compensating-deleted by the time this is raised;
    ``cleanup_complete`` is ``False`` if any delete step failed and a retry
    is needed to finish the cleanup.
    """

    def __init__(self, session_id: str, reason: str, cleanup_complete: bool = True) -> None:
        self.session_id = session_id
        self.reason = reason
        self.cleanup_complete = cleanup_complete
        super().__init__(f"transcription failed for session {session_id}: {reason}")


class ReconciliationPartialFailure(VoxGuardError):
    """Raised when a reconciliation step fails after earlier steps succeeded.

    The session stays in ``processing`` with its step cursor at the last
    completed step.
    """

    def __init__(self, session_id: str, step: str, reason: str = "") -> None:
        self.session_id = session_id
        self.step = step
        self.reason = reason
        super().__init__(f"reconciliation of {session_id} stopped at {step}: {reason}")


class SessionNotFound(VoxGuardError):
    """Raised when a session id does not exist in the store."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"session {session_id} not found")


class SessionNotRecording(VoxGuardError):
    """Raised when live segments arrive for a session that stopped recording."""

    def __init__(self, session_id: str, status: str) -> None:
        self.session_id = session_id
        self.status = status
        super().__init__(f"session {session_id} is {status}, not recording")


class SessionNotSaved(VoxGuardError):
    """Raised when batch reconciliation is requested before the recording was saved."""

    def __init__(self, session_id: str, status: str) -> None:
        self.session_id = session_id
        self.status = status
        super().__init__(f"session {session_id} is {status}; save the recording first")

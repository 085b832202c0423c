"""
ERRORS - Domain exceptions raised by the reflection core

RiskScorer and QuestionSynthesizer never raise. Everything that can fail
(illegal state changes, bad space values, persistence) raises one of these
so the HTTP adapter can map them to status codes.
"""

from typing import Optional


class SixStepsError(Exception):
    """Base class for all reflection-core errors"""


class IllegalTransition(SixStepsError):
    """A state-machine event was fired from a state that does not allow it,
    or its guard did not hold."""

    def __init__(self, event: str, state: str, reason: Optional[str] = None):
        self.event = event
        self.state = state
        self.reason = reason
        message = f"Cannot '{event}' from state '{state}'"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class InvalidSpace(SixStepsError):
    """Space value is not one of the six fixed spaces"""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid space: {value!r}")


class SessionNotFound(SixStepsError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class SessionBusy(SixStepsError):
    """Another turn for the same session held the lock past the timeout"""

    def __init__(self, session_id: str, timeout: float):
        self.session_id = session_id
        self.timeout = timeout
        super().__init__(f"Session {session_id} is busy (waited {timeout}s)")


class StorageFailure(SixStepsError):
    """The storage port failed to apply a commit. Nothing was applied."""

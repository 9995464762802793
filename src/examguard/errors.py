"""Exception hierarchy for examguard."""

from __future__ import annotations

__all__ = [
    "ExamGuardError",
    "InvalidCallTransitionError",
    "MediaAcquisitionError",
    "SessionAlreadyStartedError",
    "SessionNotStartedError",
    "SignalingError",
]


class ExamGuardError(Exception):
    """Base exception for all examguard errors."""


class SessionAlreadyStartedError(ExamGuardError):
    """``start()`` was called on a session that is already started."""


class SessionNotStartedError(ExamGuardError):
    """Operation requires a started session."""


class InvalidCallTransitionError(ExamGuardError):
    """Call operation is not permitted from the current call state."""

    def __init__(self, operation: str, state: str) -> None:
        super().__init__(f"Cannot {operation} while call is {state}")
        self.operation = operation
        self.state = state


class MediaAcquisitionError(ExamGuardError):
    """Local camera/microphone could not be acquired."""


class SignalingError(ExamGuardError):
    """The signaling relay failed to deliver a message."""

"""All string enums for examguard."""

from __future__ import annotations

from enum import StrEnum, unique


@unique
class Role(StrEnum):
    PROCTOR = "proctor"
    CANDIDATE = "candidate"


@unique
class ObservationKind(StrEnum):
    FACE_COUNT = "face_count"
    LOUDNESS_LEVEL = "loudness_level"
    FOCUS_STATE = "focus_state"


@unique
class FocusState(StrEnum):
    VISIBLE = "visible"
    HIDDEN = "hidden"


@unique
class Severity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


@unique
class RecordKind(StrEnum):
    # Policy kinds (produced from observations)
    NO_FACE = "no-face"
    MULTI_FACE = "multi-face"
    LOUD_NOISE = "loud-noise"
    TAB_SWITCH = "tab-switch"
    # Log entries that never count toward the warning total
    SENSOR_ERROR = "sensor-error"
    MEDIA_ERROR = "media-error"
    SIGNALING_ERROR = "signaling-error"
    CALL_EVENT = "call-event"
    MALPRACTICE = "malpractice"


POLICY_KINDS: frozenset[RecordKind] = frozenset(
    {
        RecordKind.NO_FACE,
        RecordKind.MULTI_FACE,
        RecordKind.LOUD_NOISE,
        RecordKind.TAB_SWITCH,
    }
)


@unique
class CallState(StrEnum):
    """State of the two-party call."""

    IDLE = "idle"
    DIALING = "dialing"
    RINGING = "ringing"
    CONNECTED = "connected"
    ENDED = "ended"


@unique
class SignalType(StrEnum):
    INVITE = "invite"
    INVITE_ACCEPTED = "invite_accepted"


@unique
class SessionEventType(StrEnum):
    SESSION_STARTED = "session-started"
    LOG_APPENDED = "log-appended"
    COUNTS_CHANGED = "counts-changed"
    CALL_STATE_CHANGED = "call-state-changed"
    MALPRACTICE_DETECTED = "malpractice-detected"
    SESSION_TERMINATED = "session-terminated"


@unique
class TerminationReason(StrEnum):
    WARNING_LIMIT = "warning_limit"
    ENDED_BY_USER = "ended_by_user"
    DISPOSED = "disposed"

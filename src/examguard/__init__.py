"""ExamGuard - async remote exam proctoring: integrity detection and call signaling."""

from examguard._version import __version__
from examguard.config import SessionConfig
from examguard.core.ledger import ViolationLedger
from examguard.core.scheduler import ObservationSink, SamplingScheduler, SensorErrorCallback
from examguard.core.session import ExamSession
from examguard.core.termination import TerminationCallback, TerminationPolicy
from examguard.detectors import (
    BoundingBox,
    FaceOracle,
    FocusCallback,
    FocusSource,
    FrameSource,
    LoudnessOracle,
    MockFaceOracle,
    MockFocusSource,
    MockLoudnessOracle,
    StaticFrameSource,
)
from examguard.errors import (
    ExamGuardError,
    InvalidCallTransitionError,
    MediaAcquisitionError,
    SessionAlreadyStartedError,
    SessionNotStartedError,
    SignalingError,
)
from examguard.models.enums import (
    POLICY_KINDS,
    CallState,
    FocusState,
    ObservationKind,
    RecordKind,
    Role,
    SessionEventType,
    Severity,
    SignalType,
    TerminationReason,
)
from examguard.models.observation import Observation
from examguard.models.record import LedgerState, ViolationRecord
from examguard.models.session_event import SessionEvent, SessionEventHandler
from examguard.models.status import SessionStatus
from examguard.signaling import (
    CallSession,
    CallStateMachine,
    InMemorySignalingRelay,
    MediaProvider,
    MockMediaProvider,
    MockPeerConnector,
    MockSignalingTransport,
    PeerConnection,
    PeerConnector,
    SignalingTransport,
    SignalMessage,
    StreamHandle,
)
from examguard.telemetry import (
    ConsoleTelemetryProvider,
    MockTelemetryProvider,
    NoopTelemetryProvider,
    TelemetryConfig,
    TelemetryProvider,
)

__all__ = [
    "__version__",
    # Core
    "ExamSession",
    "SessionConfig",
    "SessionStatus",
    "SessionEvent",
    "SessionEventHandler",
    "SamplingScheduler",
    "ObservationSink",
    "SensorErrorCallback",
    "ViolationLedger",
    "TerminationPolicy",
    "TerminationCallback",
    # Errors
    "ExamGuardError",
    "InvalidCallTransitionError",
    "MediaAcquisitionError",
    "SessionAlreadyStartedError",
    "SessionNotStartedError",
    "SignalingError",
    # Models
    "CallState",
    "FocusState",
    "LedgerState",
    "Observation",
    "ObservationKind",
    "POLICY_KINDS",
    "RecordKind",
    "Role",
    "SessionEventType",
    "Severity",
    "SignalType",
    "TerminationReason",
    "ViolationRecord",
    # Detectors
    "BoundingBox",
    "FaceOracle",
    "FocusCallback",
    "FocusSource",
    "FrameSource",
    "LoudnessOracle",
    "MockFaceOracle",
    "MockFocusSource",
    "MockLoudnessOracle",
    "StaticFrameSource",
    # Signaling
    "CallSession",
    "CallStateMachine",
    "InMemorySignalingRelay",
    "MediaProvider",
    "MockMediaProvider",
    "MockPeerConnector",
    "MockSignalingTransport",
    "PeerConnection",
    "PeerConnector",
    "SignalMessage",
    "SignalingTransport",
    "StreamHandle",
    # Telemetry
    "ConsoleTelemetryProvider",
    "MockTelemetryProvider",
    "NoopTelemetryProvider",
    "TelemetryConfig",
    "TelemetryProvider",
]

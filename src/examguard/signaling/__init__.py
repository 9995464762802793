"""Call signaling: transport, media, peer connections, and the call state machine."""

from examguard.signaling.base import (
    MediaProvider,
    PeerConnection,
    PeerConnector,
    RemoteStreamCallback,
    Signal,
    SignalCallback,
    SignalingTransport,
    SignalMessage,
    StreamHandle,
)
from examguard.signaling.call import (
    CallSession,
    CallStateListener,
    CallStateMachine,
    PendingInvite,
)
from examguard.signaling.memory import InMemorySignalingRelay
from examguard.signaling.mock import (
    MockMediaProvider,
    MockPeerConnection,
    MockPeerConnector,
    MockSignalingCall,
    MockSignalingTransport,
)

__all__ = [
    "CallSession",
    "CallStateListener",
    "CallStateMachine",
    "InMemorySignalingRelay",
    "MediaProvider",
    "MockMediaProvider",
    "MockPeerConnection",
    "MockPeerConnector",
    "MockSignalingCall",
    "MockSignalingTransport",
    "PeerConnection",
    "PeerConnector",
    "PendingInvite",
    "RemoteStreamCallback",
    "Signal",
    "SignalCallback",
    "SignalMessage",
    "SignalingTransport",
    "StreamHandle",
]

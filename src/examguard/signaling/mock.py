"""Mock media, peer-connection, and signaling implementations for testing."""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from examguard.errors import MediaAcquisitionError, SignalingError
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


@dataclass
class MockSignalingCall:
    """Record of a call made to a signaling mock."""

    method: str
    args: dict[str, Any] = field(default_factory=dict)


class MockMediaProvider(MediaProvider):
    """Media provider that hands out fresh handles.

    Set ``fail_next`` to make the next N acquisitions raise
    ``MediaAcquisitionError``.  Set ``gate`` to an ``asyncio.Event`` to
    suspend ``acquire()`` until the event is set.
    """

    def __init__(self, *, fail_next: int = 0) -> None:
        self.fail_next = fail_next
        self.gate: asyncio.Event | None = None
        self.acquired: list[StreamHandle] = []
        self.released: list[StreamHandle] = []

    @property
    def active(self) -> list[StreamHandle]:
        return [h for h in self.acquired if h not in self.released]

    async def acquire(self) -> StreamHandle:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next > 0:
            self.fail_next -= 1
            raise MediaAcquisitionError("Permission denied: camera/microphone")
        handle = StreamHandle(metadata={"video": True, "audio": True})
        self.acquired.append(handle)
        return handle

    async def release(self, handle: StreamHandle) -> None:
        self.released.append(handle)


class MockPeerConnection(PeerConnection):
    """Peer connection producing deterministic offer/answer payloads.

    When *fail_with* is set, creating the offer or answer raises it.
    """

    def __init__(
        self,
        local_stream: StreamHandle,
        *,
        initiator: bool,
        fail_with: Exception | None = None,
    ) -> None:
        self.id = uuid4().hex[:8]
        self.local_stream = local_stream
        self._initiator = initiator
        self._remote_callbacks: list[RemoteStreamCallback] = []
        self.applied_answers: list[Signal] = []
        self.received_offers: list[Signal] = []
        self.closed = False
        self.calls: list[MockSignalingCall] = []
        self.fail_with = fail_with

    @property
    def initiator(self) -> bool:
        return self._initiator

    async def create_offer(self) -> Signal:
        self.calls.append(MockSignalingCall(method="create_offer"))
        if self.fail_with is not None:
            raise self.fail_with
        return {"type": "offer", "sdp": f"offer-{self.id}"}

    async def create_answer(self, offer: Signal) -> Signal:
        self.calls.append(MockSignalingCall(method="create_answer", args={"offer": offer}))
        if self.fail_with is not None:
            raise self.fail_with
        self.received_offers.append(offer)
        return {"type": "answer", "sdp": f"answer-{self.id}"}

    async def apply_answer(self, answer: Signal) -> None:
        self.calls.append(MockSignalingCall(method="apply_answer", args={"answer": answer}))
        self.applied_answers.append(answer)

    def on_remote_stream(self, callback: RemoteStreamCallback) -> None:
        self._remote_callbacks.append(callback)

    async def close(self) -> None:
        self.calls.append(MockSignalingCall(method="close"))
        self.closed = True

    async def simulate_remote_stream(self, handle: StreamHandle | None = None) -> StreamHandle:
        """Fire the remote-stream callbacks as if media had arrived."""
        handle = handle or StreamHandle(remote=True)
        for cb in list(self._remote_callbacks):
            result = cb(handle)
            if inspect.isawaitable(result):
                await result
        return handle


class MockPeerConnector(PeerConnector):
    """Creates ``MockPeerConnection`` instances and keeps them for assertions."""

    def __init__(self, *, fail_with: Exception | None = None) -> None:
        self.connections: list[MockPeerConnection] = []
        self.fail_with = fail_with

    @property
    def last(self) -> MockPeerConnection:
        return self.connections[-1]

    def create(self, local_stream: StreamHandle, *, initiator: bool) -> MockPeerConnection:
        pc = MockPeerConnection(local_stream, initiator=initiator, fail_with=self.fail_with)
        self.connections.append(pc)
        return pc


class MockSignalingTransport(SignalingTransport):
    """Transport that records outbound messages instead of relaying them.

    Use :meth:`deliver` to push an inbound message to the registered
    callback.  Set ``fail_next`` to make the next N sends raise
    ``SignalingError``.
    """

    def __init__(self, *, endpoint_id: str = "endpoint-1", fail_next: int = 0) -> None:
        self._endpoint_id = endpoint_id
        self._callback: SignalCallback | None = None
        self.fail_next = fail_next
        self.sent: list[SignalMessage] = []
        self.calls: list[MockSignalingCall] = []

    async def register(self, callback: SignalCallback) -> str:
        self._callback = callback
        self.calls.append(MockSignalingCall(method="register"))
        return self._endpoint_id

    async def send(self, message: SignalMessage) -> None:
        self.calls.append(MockSignalingCall(method="send", args={"type": message.type}))
        if self.fail_next > 0:
            self.fail_next -= 1
            raise SignalingError("Relay unavailable")
        self.sent.append(message)

    async def unregister(self, endpoint_id: str) -> bool:
        self.calls.append(
            MockSignalingCall(method="unregister", args={"endpoint_id": endpoint_id})
        )
        existed = self._callback is not None and endpoint_id == self._endpoint_id
        self._callback = None
        return existed

    async def deliver(self, message: SignalMessage) -> None:
        """Simulate an inbound message for the registered endpoint."""
        if self._callback is None:
            raise RuntimeError("No endpoint registered")
        await self._callback(message)

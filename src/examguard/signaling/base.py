"""Abstract signaling transport, media, and peer-connection interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from examguard.models.enums import SignalType

# Opaque handshake payload (SDP offer/answer, ICE data, ...)
Signal = dict[str, Any]


class SignalMessage(BaseModel):
    """A message relayed between two signaling endpoints."""

    type: SignalType
    to_peer: str
    from_peer: str
    signal: Signal = Field(default_factory=dict)
    id: str = Field(default_factory=lambda: uuid4().hex)


SignalCallback = Callable[[SignalMessage], Coroutine[Any, Any, None]]


@dataclass(frozen=True)
class StreamHandle:
    """Reference to a local or remote media stream."""

    id: str = field(default_factory=lambda: uuid4().hex)
    remote: bool = False
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)


class SignalingTransport(ABC):
    """Reliable, ordered message relay between named endpoints.

    Implement this to plug in any relay (socket.io, WebSocket server,
    NATS, ...).  The library ships with ``InMemorySignalingRelay`` for
    single-process use.  Retry is the transport's concern; ``send`` raises
    ``SignalingError`` when a message cannot be delivered.
    """

    @abstractmethod
    async def register(self, callback: SignalCallback) -> str:
        """Register a new endpoint.

        Returns:
            The endpoint ID, unique for the lifetime of the transport.
        """
        ...

    @abstractmethod
    async def send(self, message: SignalMessage) -> None:
        """Deliver *message* to ``message.to_peer``."""
        ...

    @abstractmethod
    async def unregister(self, endpoint_id: str) -> bool:
        """Remove an endpoint.

        Returns:
            True if the endpoint existed and was removed.
        """
        ...

    async def invite(self, to_peer: str, signal: Signal, from_peer: str) -> None:
        """Convenience method to send an ``invite`` message."""
        await self.send(
            SignalMessage(
                type=SignalType.INVITE,
                to_peer=to_peer,
                from_peer=from_peer,
                signal=signal,
            )
        )

    async def accept(self, to_peer: str, signal: Signal, from_peer: str) -> None:
        """Convenience method to send an ``invite_accepted`` message."""
        await self.send(
            SignalMessage(
                type=SignalType.INVITE_ACCEPTED,
                to_peer=to_peer,
                from_peer=from_peer,
                signal=signal,
            )
        )

    async def close(self) -> None:
        """Clean up resources.

        Override this method in subclasses that need cleanup.
        The default implementation does nothing.
        """
        return None


class MediaProvider(ABC):
    """Acquires and releases the local camera/microphone stream."""

    @abstractmethod
    async def acquire(self) -> StreamHandle:
        """Acquire the local media stream.

        Raises:
            MediaAcquisitionError: The device is unavailable or denied.
        """
        ...

    @abstractmethod
    async def release(self, handle: StreamHandle) -> None:
        """Release a stream returned by :meth:`acquire`."""
        ...


RemoteStreamCallback = Callable[[StreamHandle], Any]


class PeerConnection(ABC):
    """One side of a direct media connection.

    The initiator creates an offer and later applies the answer; the
    other side creates an answer from the received offer.  When remote
    media arrives the connection invokes the registered remote-stream
    callback.
    """

    @property
    @abstractmethod
    def initiator(self) -> bool: ...

    @abstractmethod
    async def create_offer(self) -> Signal:
        """Create the outbound handshake offer (initiator only)."""
        ...

    @abstractmethod
    async def create_answer(self, offer: Signal) -> Signal:
        """Create the handshake answer for a received *offer*."""
        ...

    @abstractmethod
    async def apply_answer(self, answer: Signal) -> None:
        """Apply the remote answer (initiator only)."""
        ...

    @abstractmethod
    def on_remote_stream(self, callback: RemoteStreamCallback) -> None:
        """Register the callback fired when remote media arrives."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Tear down the connection."""
        ...


class PeerConnector(ABC):
    """Factory for peer connections bound to a local stream."""

    @abstractmethod
    def create(self, local_stream: StreamHandle, *, initiator: bool) -> PeerConnection: ...

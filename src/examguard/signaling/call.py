"""Call signaling state machine for the two-party exam call."""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from examguard.errors import InvalidCallTransitionError, MediaAcquisitionError, SignalingError
from examguard.models.enums import CallState
from examguard.signaling.base import (
    MediaProvider,
    PeerConnection,
    PeerConnector,
    Signal,
    SignalingTransport,
    StreamHandle,
)
from examguard.telemetry.base import Attr, SpanKind, TelemetryProvider
from examguard.telemetry.noop import NoopTelemetryProvider

logger = logging.getLogger("examguard.call")

# Called after every state change: (old_state, new_state)
CallStateListener = Callable[[CallState, CallState], Coroutine[Any, Any, None]]

_TRANSITIONS: dict[CallState, frozenset[CallState]] = {
    CallState.IDLE: frozenset({CallState.DIALING, CallState.RINGING, CallState.ENDED}),
    CallState.DIALING: frozenset({CallState.CONNECTED, CallState.ENDED}),
    CallState.RINGING: frozenset({CallState.CONNECTED, CallState.ENDED}),
    CallState.CONNECTED: frozenset({CallState.ENDED}),
    CallState.ENDED: frozenset(),
}


@dataclass(frozen=True)
class PendingInvite:
    """An inbound invite waiting for the operator to answer."""

    from_peer: str
    signal: Signal


@dataclass
class CallSession:
    """The single call owned by an exam session."""

    state: CallState = CallState.IDLE
    local_stream: StreamHandle | None = None
    remote_stream: StreamHandle | None = None
    peer_id: str | None = None
    pending_invite: PendingInvite | None = None
    history: list[CallState] = field(default_factory=lambda: [CallState.IDLE])


class CallStateMachine:
    """Drives one call through dial/ring/answer to ``ended``.

    States::

        idle -> dialing -> connected
        idle -> ringing -> connected
        {idle, dialing, ringing, connected} -> ended

    ``ended`` is terminal.  ``terminate()`` is idempotent and never needs
    the remote peer's cooperation.  Operations that suspend (media
    acquisition, offer/answer creation, relay sends) re-check the state
    when they resume, so a termination that lands mid-handshake wins and
    whatever the operation acquired is released.
    """

    def __init__(
        self,
        transport: SignalingTransport,
        media: MediaProvider,
        connector: PeerConnector,
        *,
        endpoint_id: str | None = None,
        on_state_change: CallStateListener | None = None,
        telemetry: TelemetryProvider | None = None,
        session_id: str | None = None,
    ) -> None:
        self._transport = transport
        self._media = media
        self._connector = connector
        self._endpoint_id = endpoint_id
        self._on_state_change = on_state_change
        self._telemetry = telemetry or NoopTelemetryProvider()
        self._session_id = session_id
        self._session = CallSession()
        self._pc: PeerConnection | None = None
        self._in_flight: str | None = None

    # -- State queries --

    @property
    def session(self) -> CallSession:
        return self._session

    @property
    def state(self) -> CallState:
        return self._session.state

    @property
    def ended(self) -> bool:
        return self._session.state == CallState.ENDED

    @property
    def endpoint_id(self) -> str | None:
        return self._endpoint_id

    def bind(self, endpoint_id: str) -> None:
        """Set the local endpoint ID assigned by the transport."""
        self._endpoint_id = endpoint_id

    # -- Outbound call --

    async def dial(self, peer_id: str) -> bool:
        """Call *peer_id*.

        Returns True once the invite is sent and the call is ``dialing``,
        or False if the call was terminated while the handshake was being
        prepared.

        Raises:
            InvalidCallTransitionError: The call is not idle.
            MediaAcquisitionError: Local media is unavailable; state is
                unchanged and the caller may retry.
            SignalingError: The offer could not be created or the invite
                could not be relayed; state is unchanged and the caller may
                retry.
        """
        self._require(CallState.IDLE, "dial")
        self._begin("dial")
        span_id = self._telemetry.start_span(
            SpanKind.CALL_DIAL,
            "call.dial",
            session_id=self._session_id,
            attributes={Attr.PEER_ID: peer_id},
        )
        pc: PeerConnection | None = None
        try:
            local = await self._ensure_local_stream()
            if local is None:
                return self._aborted(span_id)
            pc = self._connector.create(local, initiator=True)
            pc.on_remote_stream(self.handle_remote_stream)
            offer = await pc.create_offer()
            if self.ended:
                await self._close_quietly(pc)
                return self._aborted(span_id)
            await self._transport.invite(peer_id, offer, self._require_endpoint())
        except Exception as exc:
            if pc is not None:
                await self._close_quietly(pc)
            self._telemetry.end_span(span_id, status="error", error_message=str(exc))
            logger.warning("Dial to %s failed: %s", peer_id, exc)
            if isinstance(exc, (MediaAcquisitionError, SignalingError)):
                raise
            raise SignalingError(f"Handshake with {peer_id} failed: {exc}") from exc
        finally:
            self._in_flight = None

        if self.ended:
            await self._close_quietly(pc)
            return self._aborted(span_id)
        self._pc = pc
        self._session.peer_id = peer_id
        self._telemetry.end_span(span_id)
        await self._transition(CallState.DIALING)
        return True

    async def handle_accept(self, signal: Signal) -> bool:
        """Apply the remote answer for an outbound call.

        Returns True if the call became ``connected``.  Accepts that arrive
        in any state other than ``dialing`` are logged and ignored.
        """
        if self.state != CallState.DIALING or self._pc is None:
            logger.warning("Ignoring invite_accepted while call is %s", self.state)
            return False
        await self._pc.apply_answer(signal)
        if self.state != CallState.DIALING:
            return False
        await self._transition(CallState.CONNECTED)
        return True

    # -- Inbound call --

    async def receive_invite(self, from_peer: str, signal: Signal) -> bool:
        """Record an inbound invite and start ringing.

        Only one partner is allowed per call: invites arriving while a
        call is in progress are rejected, not queued.
        """
        if self.ended:
            logger.info("Ignoring invite from %s: call has ended", from_peer)
            return False
        if self.state != CallState.IDLE or self._in_flight is not None:
            logger.warning(
                "Rejecting invite from %s: call is %s",
                from_peer,
                self._in_flight or self.state,
                extra={"peer_id": from_peer},
            )
            return False
        self._session.pending_invite = PendingInvite(from_peer=from_peer, signal=signal)
        self._session.peer_id = from_peer
        await self._transition(CallState.RINGING)
        return True

    async def answer(self) -> bool:
        """Accept the pending invite.

        Returns True once the answer is sent and the call is
        ``connected``, or False if the call was terminated meanwhile.

        Raises:
            InvalidCallTransitionError: No invite is ringing.
            MediaAcquisitionError: Local media is unavailable; the call
                keeps ringing.
            SignalingError: The answer could not be created or relayed;
                the call keeps ringing.
        """
        self._require(CallState.RINGING, "answer")
        self._begin("answer")
        invite = self._session.pending_invite
        assert invite is not None
        span_id = self._telemetry.start_span(
            SpanKind.CALL_ANSWER,
            "call.answer",
            session_id=self._session_id,
            attributes={Attr.PEER_ID: invite.from_peer},
        )
        pc: PeerConnection | None = None
        try:
            local = await self._ensure_local_stream()
            if local is None:
                return self._aborted(span_id)
            pc = self._connector.create(local, initiator=False)
            pc.on_remote_stream(self.handle_remote_stream)
            answer = await pc.create_answer(invite.signal)
            if self.ended:
                await self._close_quietly(pc)
                return self._aborted(span_id)
            await self._transport.accept(invite.from_peer, answer, self._require_endpoint())
        except Exception as exc:
            if pc is not None:
                await self._close_quietly(pc)
            self._telemetry.end_span(span_id, status="error", error_message=str(exc))
            logger.warning("Answering %s failed: %s", invite.from_peer, exc)
            if isinstance(exc, (MediaAcquisitionError, SignalingError)):
                raise
            raise SignalingError(f"Handshake with {invite.from_peer} failed: {exc}") from exc
        finally:
            self._in_flight = None

        if self.ended:
            await self._close_quietly(pc)
            return self._aborted(span_id)
        self._pc = pc
        self._session.pending_invite = None
        self._telemetry.end_span(span_id)
        await self._transition(CallState.CONNECTED)
        return True

    # -- Media --

    async def handle_remote_stream(self, handle: StreamHandle) -> bool:
        """Attach the remote peer's stream."""
        if self.state in (CallState.IDLE, CallState.ENDED):
            logger.debug("Ignoring remote stream while call is %s", self.state)
            return False
        self._session.remote_stream = handle
        logger.info("Remote stream %s attached", handle.id)
        return True

    # -- Teardown --

    async def terminate(self) -> bool:
        """End the call from any non-ended state.

        Releases both stream handles and closes the peer connection.
        Returns False (and does nothing) if the call had already ended.
        """
        if self.ended:
            return False
        old = self._session.state
        pc = self._pc
        local = self._session.local_stream
        self._session.state = CallState.ENDED
        self._session.history.append(CallState.ENDED)
        self._session.local_stream = None
        self._session.remote_stream = None
        self._session.pending_invite = None
        self._pc = None

        with self._telemetry.span(
            SpanKind.CALL_TERMINATE,
            "call.terminate",
            session_id=self._session_id,
            attributes={Attr.CALL_STATE: str(old)},
        ):
            if pc is not None:
                await self._close_quietly(pc)
            if local is not None:
                await self._release_quietly(local)
        logger.info("Call ended (was %s)", old)
        await self._notify(old, CallState.ENDED)
        return True

    # -- Internals --

    def _require(self, state: CallState, operation: str) -> None:
        if self._session.state != state:
            raise InvalidCallTransitionError(operation, self._session.state)
        if self._in_flight is not None:
            raise InvalidCallTransitionError(operation, f"busy ({self._in_flight})")

    def _begin(self, operation: str) -> None:
        self._in_flight = operation

    def _require_endpoint(self) -> str:
        if self._endpoint_id is None:
            raise SignalingError("Endpoint is not registered with the signaling transport")
        return self._endpoint_id

    def _aborted(self, span_id: str) -> bool:
        self._telemetry.end_span(span_id, status="error", error_message="call terminated")
        logger.info("Handshake abandoned: call terminated")
        return False

    async def _ensure_local_stream(self) -> StreamHandle | None:
        if self._session.local_stream is not None:
            return self._session.local_stream
        try:
            handle = await self._media.acquire()
        except MediaAcquisitionError:
            raise
        except Exception as exc:
            raise MediaAcquisitionError(str(exc)) from exc
        if self.ended:
            await self._release_quietly(handle)
            return None
        self._session.local_stream = handle
        return handle

    async def _transition(self, new: CallState) -> None:
        old = self._session.state
        if new not in _TRANSITIONS[old]:
            raise InvalidCallTransitionError(f"move to {new}", old)
        self._session.state = new
        self._session.history.append(new)
        logger.info("Call state %s -> %s", old, new, extra={"peer_id": self._session.peer_id})
        await self._notify(old, new)

    async def _notify(self, old: CallState, new: CallState) -> None:
        if self._on_state_change is None:
            return
        try:
            await self._on_state_change(old, new)
        except Exception:
            logger.exception("Call state listener failed", extra={"state": str(new)})

    async def _close_quietly(self, pc: PeerConnection | None) -> None:
        if pc is None:
            return
        try:
            await pc.close()
        except Exception:
            logger.exception("Failed to close peer connection")

    async def _release_quietly(self, handle: StreamHandle) -> None:
        try:
            await self._media.release(handle)
        except Exception:
            logger.exception("Failed to release media stream %s", handle.id)

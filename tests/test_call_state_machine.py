"""Tests for the call signaling state machine."""

from __future__ import annotations

import asyncio

import pytest

from examguard.errors import InvalidCallTransitionError, MediaAcquisitionError, SignalingError
from examguard.models.enums import CallState, SignalType
from examguard.signaling.base import StreamHandle
from examguard.signaling.call import CallStateMachine
from examguard.signaling.mock import MockMediaProvider, MockPeerConnector, MockSignalingTransport
from examguard.telemetry.base import SpanKind
from examguard.telemetry.mock import MockTelemetryProvider

OFFER = {"type": "offer", "sdp": "remote-offer"}
ANSWER = {"type": "answer", "sdp": "remote-answer"}


class _Listener:
    def __init__(self) -> None:
        self.changes: list[tuple[CallState, CallState]] = []

    async def __call__(self, old: CallState, new: CallState) -> None:
        self.changes.append((old, new))


def _machine(
    transport: MockSignalingTransport,
    media: MockMediaProvider,
    connector: MockPeerConnector,
    **kwargs: object,
) -> CallStateMachine:
    return CallStateMachine(
        transport, media, connector, endpoint_id="me", **kwargs  # type: ignore[arg-type]
    )


# ---- Tests: outbound call ----


class TestDial:
    async def test_dial_sends_invite(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        listener = _Listener()
        call = _machine(transport, media, connector, on_state_change=listener)

        assert await call.dial("peer-1") is True
        assert call.state == CallState.DIALING
        assert call.session.peer_id == "peer-1"
        assert call.session.local_stream is not None
        assert connector.last.initiator

        msg = transport.sent[0]
        assert msg.type == SignalType.INVITE
        assert msg.to_peer == "peer-1"
        assert msg.from_peer == "me"
        assert msg.signal["type"] == "offer"
        assert listener.changes == [(CallState.IDLE, CallState.DIALING)]

    async def test_accept_connects(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        call = _machine(transport, media, connector)
        await call.dial("peer-1")

        assert await call.handle_accept(ANSWER) is True
        assert call.state == CallState.CONNECTED
        assert connector.last.applied_answers == [ANSWER]

    async def test_accept_outside_dialing_ignored(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        call = _machine(transport, media, connector)
        assert await call.handle_accept(ANSWER) is False
        assert call.state == CallState.IDLE

    async def test_dial_twice_rejected(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        call = _machine(transport, media, connector)
        await call.dial("peer-1")
        with pytest.raises(InvalidCallTransitionError):
            await call.dial("peer-2")

    async def test_media_failure_leaves_state_unchanged(
        self,
        transport: MockSignalingTransport,
        connector: MockPeerConnector,
    ) -> None:
        media = MockMediaProvider(fail_next=1)
        call = _machine(transport, media, connector)

        with pytest.raises(MediaAcquisitionError):
            await call.dial("peer-1")
        assert call.state == CallState.IDLE
        assert transport.sent == []

        # Retry succeeds
        assert await call.dial("peer-1") is True

    async def test_relay_failure_closes_peer_connection(
        self,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        transport = MockSignalingTransport(fail_next=1)
        call = _machine(transport, media, connector)

        with pytest.raises(SignalingError):
            await call.dial("peer-1")
        assert call.state == CallState.IDLE
        assert connector.last.closed

    async def test_offer_failure_becomes_signaling_error(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
    ) -> None:
        connector = MockPeerConnector(fail_with=RuntimeError("ICE failure"))
        telemetry = MockTelemetryProvider()
        call = _machine(transport, media, connector, telemetry=telemetry)

        with pytest.raises(SignalingError, match="ICE failure") as excinfo:
            await call.dial("peer-1")
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert call.state == CallState.IDLE
        assert connector.last.closed
        assert transport.sent == []
        assert telemetry.get_spans(SpanKind.CALL_DIAL)[0].failed

        # The call is not left mid-handshake
        connector.fail_with = None
        assert await call.dial("peer-1") is True

    async def test_local_stream_reused_on_retry(
        self,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        transport = MockSignalingTransport(fail_next=1)
        call = _machine(transport, media, connector)
        with pytest.raises(SignalingError):
            await call.dial("peer-1")
        await call.dial("peer-1")
        assert len(media.acquired) == 1

    async def test_dial_without_endpoint_raises(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        call = CallStateMachine(transport, media, connector)
        with pytest.raises(SignalingError):
            await call.dial("peer-1")
        assert call.state == CallState.IDLE

    async def test_dial_span(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        telemetry = MockTelemetryProvider()
        call = _machine(transport, media, connector, telemetry=telemetry)
        await call.dial("peer-1")
        spans = telemetry.get_spans(SpanKind.CALL_DIAL)
        assert len(spans) == 1
        assert spans[0].status == "ok"


# ---- Tests: inbound call ----


class TestInbound:
    async def test_invite_rings(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        call = _machine(transport, media, connector)
        assert await call.receive_invite("caller", OFFER) is True
        assert call.state == CallState.RINGING
        assert call.session.pending_invite is not None
        assert call.session.pending_invite.from_peer == "caller"

    async def test_answer_connects(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        call = _machine(transport, media, connector)
        await call.receive_invite("caller", OFFER)

        assert await call.answer() is True
        assert call.state == CallState.CONNECTED
        assert call.session.pending_invite is None
        assert not connector.last.initiator
        assert connector.last.received_offers == [OFFER]

        msg = transport.sent[0]
        assert msg.type == SignalType.INVITE_ACCEPTED
        assert msg.to_peer == "caller"
        assert msg.signal["type"] == "answer"

    async def test_answer_while_idle_rejected(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        call = _machine(transport, media, connector)
        with pytest.raises(InvalidCallTransitionError, match="Cannot answer while call is idle"):
            await call.answer()

    async def test_second_invite_rejected(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        call = _machine(transport, media, connector)
        await call.receive_invite("caller", OFFER)
        assert await call.receive_invite("intruder", OFFER) is False
        assert call.session.peer_id == "caller"

    async def test_invite_while_dialing_rejected(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        call = _machine(transport, media, connector)
        await call.dial("peer-1")
        assert await call.receive_invite("caller", OFFER) is False
        assert call.state == CallState.DIALING

    async def test_answer_media_failure_keeps_ringing(
        self,
        transport: MockSignalingTransport,
        connector: MockPeerConnector,
    ) -> None:
        media = MockMediaProvider(fail_next=1)
        call = _machine(transport, media, connector)
        await call.receive_invite("caller", OFFER)
        with pytest.raises(MediaAcquisitionError):
            await call.answer()
        assert call.state == CallState.RINGING

    async def test_answer_failure_keeps_ringing(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
    ) -> None:
        connector = MockPeerConnector(fail_with=RuntimeError("bad remote description"))
        call = _machine(transport, media, connector)
        await call.receive_invite("caller", OFFER)

        with pytest.raises(SignalingError, match="bad remote description"):
            await call.answer()
        assert call.state == CallState.RINGING
        assert connector.last.closed
        assert transport.sent == []


# ---- Tests: remote media ----


class TestRemoteStream:
    async def test_remote_stream_attached_when_connected(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        call = _machine(transport, media, connector)
        await call.dial("peer-1")
        await call.handle_accept(ANSWER)
        handle = await connector.last.simulate_remote_stream()
        assert call.session.remote_stream == handle

    async def test_remote_stream_ignored_when_idle(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        call = _machine(transport, media, connector)
        assert await call.handle_remote_stream(StreamHandle(remote=True)) is False
        assert call.session.remote_stream is None


# ---- Tests: teardown ----


class TestTerminate:
    async def test_terminate_releases_everything(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        listener = _Listener()
        call = _machine(transport, media, connector, on_state_change=listener)
        await call.dial("peer-1")
        await call.handle_accept(ANSWER)
        await connector.last.simulate_remote_stream()

        assert await call.terminate() is True
        assert call.state == CallState.ENDED
        assert call.session.local_stream is None
        assert call.session.remote_stream is None
        assert connector.last.closed
        assert media.active == []
        assert listener.changes[-1] == (CallState.CONNECTED, CallState.ENDED)

    async def test_terminate_is_idempotent(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        listener = _Listener()
        call = _machine(transport, media, connector, on_state_change=listener)
        assert await call.terminate() is True
        assert await call.terminate() is False
        assert listener.changes == [(CallState.IDLE, CallState.ENDED)]

    async def test_nothing_leaves_ended(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        call = _machine(transport, media, connector)
        await call.terminate()

        with pytest.raises(InvalidCallTransitionError):
            await call.dial("peer-1")
        assert await call.receive_invite("caller", OFFER) is False
        assert await call.handle_accept(ANSWER) is False
        assert call.state == CallState.ENDED

    async def test_terminate_during_dial_wins(
        self,
        transport: MockSignalingTransport,
        connector: MockPeerConnector,
        advance,
    ) -> None:
        media = MockMediaProvider()
        media.gate = asyncio.Event()
        call = _machine(transport, media, connector)

        dial = asyncio.create_task(call.dial("peer-1"))
        await advance()
        await call.terminate()
        media.gate.set()

        assert await dial is False
        assert call.state == CallState.ENDED
        assert transport.sent == []
        assert media.active == []

    async def test_terminate_span(
        self,
        transport: MockSignalingTransport,
        media: MockMediaProvider,
        connector: MockPeerConnector,
    ) -> None:
        telemetry = MockTelemetryProvider()
        call = _machine(transport, media, connector, telemetry=telemetry)
        await call.terminate()
        assert len(telemetry.get_spans(SpanKind.CALL_TERMINATE)) == 1

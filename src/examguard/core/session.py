"""ExamSession - the aggregate root wiring detection, ledger, and call."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from examguard.config import SessionConfig
from examguard.core.ledger import ViolationLedger
from examguard.core.scheduler import SamplingScheduler
from examguard.core.termination import TerminationPolicy
from examguard.errors import (
    MediaAcquisitionError,
    SessionAlreadyStartedError,
    SessionNotStartedError,
    SignalingError,
)
from examguard.models.enums import (
    POLICY_KINDS,
    CallState,
    ObservationKind,
    RecordKind,
    Role,
    SessionEventType,
    Severity,
    SignalType,
    TerminationReason,
)
from examguard.models.observation import Observation
from examguard.models.record import ViolationRecord
from examguard.models.session_event import SessionEvent, SessionEventHandler
from examguard.models.status import SessionStatus
from examguard.signaling.call import CallStateMachine
from examguard.telemetry.base import Attr, SpanKind, TelemetryProvider
from examguard.telemetry.config import TelemetryConfig
from examguard.telemetry.noop import NoopTelemetryProvider

if TYPE_CHECKING:
    from examguard.detectors.base import FaceOracle, FocusSource, FrameSource, LoudnessOracle
    from examguard.signaling.base import (
        MediaProvider,
        PeerConnector,
        SignalingTransport,
        SignalMessage,
    )

logger = logging.getLogger("examguard.session")

_SENSOR_ERROR_MESSAGES: dict[ObservationKind, str] = {
    ObservationKind.FACE_COUNT: "Face detection error occurred",
    ObservationKind.LOUDNESS_LEVEL: "Error accessing microphone",
}

MALPRACTICE_MESSAGE = (
    "Malpractice detected: the examination has been terminated due to multiple warnings"
)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class ExamSession:
    """One supervised exam session between a candidate and a proctor device.

    The session owns a :class:`ViolationLedger`, a
    :class:`CallStateMachine`, a :class:`TerminationPolicy` and, once
    started, a :class:`SamplingScheduler`.  Observations from the
    scheduler are queued and applied to the ledger by a single consumer
    task, in arrival order.

    Example::

        session = ExamSession(
            Role.CANDIDATE,
            transport=relay,
            media=camera,
            connector=webrtc,
            face_oracle=blazeface,
            frame_source=camera_frames,
            loudness_oracle=mic_meter,
            focus_source=page_visibility,
        )

        @session.on(SessionEventType.SESSION_TERMINATED)
        async def show_banner(event: SessionEvent) -> None:
            ...

        async with session:
            await session.dial(proctor_id)
            ...
    """

    def __init__(
        self,
        role: Role | str,
        transport: SignalingTransport,
        media: MediaProvider,
        connector: PeerConnector,
        *,
        config: SessionConfig | None = None,
        face_oracle: FaceOracle | None = None,
        frame_source: FrameSource | None = None,
        loudness_oracle: LoudnessOracle | None = None,
        focus_source: FocusSource | None = None,
        clock: Callable[[], float] | None = None,
        telemetry: TelemetryConfig | TelemetryProvider | None = None,
        session_id: str | None = None,
    ) -> None:
        """Initialise the session.

        Args:
            role: ``proctor`` or ``candidate``.  Read once; detectors only
                run when it equals ``config.monitored_role``.
            transport: Signaling relay shared with the remote device.
            media: Local camera/microphone provider.
            connector: Peer-connection factory.
            config: Thresholds and cadences. Defaults to ``SessionConfig()``.
            face_oracle: Face-presence model (optional).
            frame_source: Local video frames for the face oracle (optional).
            loudness_oracle: Audio loudness meter (optional).
            focus_source: Tab visibility notifications (optional).
            clock: Millisecond clock used to timestamp observations.
                Defaults to ``time.monotonic``.
            telemetry: Optional telemetry provider or config.  Defaults to
                ``NoopTelemetryProvider``.
            session_id: Explicit session ID. Generated when omitted.
        """
        self._id = session_id or uuid4().hex
        self._role = Role(role)
        self._config = config or SessionConfig()
        self._transport = transport
        self._face_oracle = face_oracle
        self._frame_source = frame_source
        self._loudness_oracle = loudness_oracle
        self._focus_source = focus_source
        self._clock = clock or _monotonic_ms

        self._telemetry_metadata: dict[str, str] = {}
        if isinstance(telemetry, TelemetryProvider):
            self._telemetry: TelemetryProvider = telemetry
        elif isinstance(telemetry, TelemetryConfig):
            self._telemetry = telemetry.provider or NoopTelemetryProvider()
            self._telemetry_metadata = dict(telemetry.metadata)
        else:
            self._telemetry = NoopTelemetryProvider()

        self._event_handlers: list[tuple[SessionEventType, SessionEventHandler]] = []
        self._ledger = ViolationLedger(self._config)
        self._call = CallStateMachine(
            transport,
            media,
            connector,
            on_state_change=self._on_call_state_change,
            telemetry=self._telemetry,
            session_id=self._id,
        )
        self._policy = TerminationPolicy(
            self._ledger,
            self._call,
            warning_limit=self._config.warning_limit,
            on_terminated=self._on_terminated,
        )
        self._scheduler: SamplingScheduler | None = None
        self._queue: asyncio.Queue[Observation] = asyncio.Queue()
        self._consumer: asyncio.Task[None] | None = None
        self._endpoint_id: str | None = None
        self._session_span: str | None = None
        self._started = False
        self._disposed = False

    # -- Properties --

    @property
    def id(self) -> str:
        return self._id

    @property
    def role(self) -> Role:
        return self._role

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def ledger(self) -> ViolationLedger:
        return self._ledger

    @property
    def call(self) -> CallStateMachine:
        return self._call

    @property
    def policy(self) -> TerminationPolicy:
        return self._policy

    @property
    def scheduler(self) -> SamplingScheduler | None:
        """The sampling scheduler (``None`` until :meth:`start`)."""
        return self._scheduler

    @property
    def telemetry(self) -> TelemetryProvider:
        return self._telemetry

    @property
    def endpoint_id(self) -> str | None:
        """Signaling endpoint ID assigned on :meth:`start`."""
        return self._endpoint_id

    @property
    def started(self) -> bool:
        return self._started

    @property
    def terminated(self) -> bool:
        return self._ledger.terminated

    @property
    def monitored(self) -> bool:
        """True when this device runs the integrity detectors."""
        return self._role == self._config.monitored_role

    @property
    def records(self) -> tuple[ViolationRecord, ...]:
        return self._ledger.records

    # -- Event handlers --

    def on(self, event_type: SessionEventType | str) -> Callable[..., Any]:
        """Decorator to register a session event handler filtered by type."""
        event_type = SessionEventType(event_type)

        def decorator(fn: SessionEventHandler) -> SessionEventHandler:
            self._event_handlers.append((event_type, fn))
            return fn

        return decorator

    async def _emit(
        self, event_type: SessionEventType, data: dict[str, Any] | None = None
    ) -> None:
        event = SessionEvent(type=event_type, session_id=self._id, data=data or {})
        for filter_type, handler in self._event_handlers:
            if filter_type == event.type:
                try:
                    await handler(event)
                except Exception:
                    logger.exception(
                        "Session event handler failed",
                        extra={"event_type": str(event.type), "session_id": self._id},
                    )

    # -- Lifecycle --

    async def start(self) -> str:
        """Register with the signaling transport and start sampling.

        Returns:
            The signaling endpoint ID to share with the remote party.

        Raises:
            SessionAlreadyStartedError: ``start()`` was already called.
        """
        if self._started:
            raise SessionAlreadyStartedError(f"Session {self._id} already started")
        self._started = True
        attributes: dict[str, Any] = {Attr.ROLE: str(self._role), **self._telemetry_metadata}
        self._session_span = self._telemetry.start_span(
            SpanKind.EXAM_SESSION,
            "exam.session",
            session_id=self._id,
            attributes=attributes,
        )
        try:
            self._endpoint_id = await self._transport.register(self._on_signal)
            self._call.bind(self._endpoint_id)
            self._scheduler = self._build_scheduler()
            self._consumer = asyncio.create_task(
                self._consume(), name=f"examguard-session-{self._id}"
            )
            self._scheduler.start()
        except Exception as exc:
            logger.exception("Session %s failed to start", self._id)
            await self._release_resources(status="error", error_message=str(exc))
            raise

        logger.info(
            "Session %s started as %s (endpoint=%s, detectors=%s)",
            self._id,
            self._role,
            self._endpoint_id,
            self._scheduler.active_detectors,
        )
        await self._emit(SessionEventType.SESSION_STARTED, {"endpoint_id": self._endpoint_id})
        return self._endpoint_id

    def _build_scheduler(self) -> SamplingScheduler:
        monitored = self.monitored
        cfg = self._config
        return SamplingScheduler(
            self._enqueue,
            config=cfg,
            clock=self._clock,
            face_oracle=self._face_oracle if monitored and cfg.face_detection else None,
            frame_source=self._frame_source,
            loudness_oracle=(
                self._loudness_oracle if monitored and cfg.audio_detection else None
            ),
            focus_source=self._focus_source if monitored and cfg.focus_detection else None,
            on_sensor_error=self._on_sensor_error,
            telemetry=self._telemetry,
            session_id=self._id,
        )

    async def dispose(self) -> None:
        """Stop the session and release every resource it acquired.

        Terminates the session (reason ``disposed``) if it has not been
        terminated yet.  The session object remains readable afterwards.
        """
        if self._disposed:
            return
        self._disposed = True
        if self._started:
            await self._policy.terminate(TerminationReason.DISPOSED)
        await self._release_resources()

    async def _release_resources(
        self, *, status: str = "ok", error_message: str | None = None
    ) -> None:
        if self._scheduler is not None:
            await self._scheduler.stop()
        consumer = self._consumer
        self._consumer = None
        if consumer is not None and consumer is not asyncio.current_task():
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
        if self._endpoint_id is not None:
            try:
                await self._transport.unregister(self._endpoint_id)
            except Exception:
                logger.exception("Failed to unregister endpoint %s", self._endpoint_id)
        for oracle in (self._face_oracle, self._loudness_oracle):
            if oracle is None:
                continue
            try:
                await oracle.close()
            except Exception:
                logger.exception("Failed to close %s", type(oracle).__name__)
        self._end_session_span(status=status, error_message=error_message)

    def _end_session_span(self, *, status: str = "ok", error_message: str | None = None) -> None:
        if self._session_span is None:
            return
        span_id, self._session_span = self._session_span, None
        self._telemetry.end_span(
            span_id,
            status=status,
            error_message=error_message,
            attributes={
                Attr.WARNING_TOTAL: self._ledger.warning_total,
                Attr.TERMINATION_REASON: str(self._ledger.state.termination_reason or ""),
            },
        )

    async def __aenter__(self) -> ExamSession:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.dispose()

    # -- Observations --

    def _enqueue(self, observation: Observation) -> None:
        if self._ledger.terminated or self._disposed:
            return
        self._queue.put_nowait(observation)

    async def _consume(self) -> None:
        while not self._ledger.terminated:
            observation = await self._queue.get()
            try:
                await self._process(observation)
            except Exception:
                logger.exception("Failed to process %s observation", observation.kind)

    async def observe(self, observation: Observation) -> ViolationRecord | None:
        """Apply *observation* to the ledger immediately.

        Returns the record it produced, if any.  Observations that arrive
        after termination are discarded.
        """
        self._require_started()
        return await self._process(observation)

    async def _process(self, observation: Observation) -> ViolationRecord | None:
        record = self._ledger.append(observation)
        if record is None:
            return None
        # Marked before any await so no later append can claim the limit.
        terminating = self._policy.evaluate()

        await self._emit(SessionEventType.LOG_APPENDED, {"record": record})
        if record.kind in POLICY_KINDS:
            await self._emit(SessionEventType.COUNTS_CHANGED, self._ledger.counts())
            self._telemetry.record_metric(
                "examguard.warning_total",
                self._ledger.warning_total,
                attributes={Attr.SESSION_ID: self._id, Attr.RECORD_KIND: str(record.kind)},
            )
        if terminating:
            await self._policy.complete(TerminationReason.WARNING_LIMIT)
        return record

    async def _log(self, kind: RecordKind, message: str, severity: Severity) -> ViolationRecord:
        record = self._ledger.log(kind, message, severity, self._clock())
        await self._emit(SessionEventType.LOG_APPENDED, {"record": record})
        return record

    async def _on_sensor_error(self, kind: ObservationKind, exc: Exception) -> None:
        if self._ledger.terminated:
            return
        await self._log(RecordKind.SENSOR_ERROR, _SENSOR_ERROR_MESSAGES[kind], Severity.ERROR)

    # -- Call control --

    async def dial(self, peer_id: str) -> bool:
        """Call the remote party.

        Returns False, with an error entry in the ledger, when local media
        or the relay fails; the call stays idle and the caller may retry.
        """
        self._require_started()
        try:
            return await self._call.dial(peer_id)
        except MediaAcquisitionError as exc:
            await self._log(
                RecordKind.MEDIA_ERROR, f"Error accessing camera/microphone: {exc}", Severity.ERROR
            )
        except SignalingError as exc:
            await self._log(
                RecordKind.SIGNALING_ERROR, f"Could not reach {peer_id}: {exc}", Severity.ERROR
            )
        return False

    async def answer(self) -> bool:
        """Answer the ringing invite.

        Returns False, with an error entry in the ledger, when local media
        or the relay fails; the call keeps ringing.
        """
        self._require_started()
        try:
            return await self._call.answer()
        except MediaAcquisitionError as exc:
            await self._log(
                RecordKind.MEDIA_ERROR, f"Error accessing camera/microphone: {exc}", Severity.ERROR
            )
        except SignalingError as exc:
            await self._log(
                RecordKind.SIGNALING_ERROR, f"Could not answer call: {exc}", Severity.ERROR
            )
        return False

    async def end_call(self) -> bool:
        """Hang up.  Returns False if the call had already ended."""
        return await self._call.terminate()

    async def terminate(self, reason: TerminationReason = TerminationReason.ENDED_BY_USER) -> bool:
        """Terminate the session.

        Idempotent: only the first termination, whether requested here or
        triggered by the warning limit, has an effect.
        """
        return await self._policy.terminate(TerminationReason(reason))

    async def _on_signal(self, message: SignalMessage) -> None:
        if message.type == SignalType.INVITE:
            await self._call.receive_invite(message.from_peer, message.signal)
        elif message.type == SignalType.INVITE_ACCEPTED:
            if message.from_peer != self._call.session.peer_id:
                logger.warning(
                    "Ignoring invite_accepted from unexpected peer %s", message.from_peer
                )
                return
            await self._call.handle_accept(message.signal)

    async def _on_call_state_change(self, old: CallState, new: CallState) -> None:
        peer_id = self._call.session.peer_id
        await self._emit(
            SessionEventType.CALL_STATE_CHANGED,
            {"state": new, "previous": old, "peer_id": peer_id},
        )
        if new == CallState.RINGING:
            await self._log(RecordKind.CALL_EVENT, f"Incoming call from {peer_id}", Severity.INFO)
        elif new == CallState.CONNECTED:
            await self._log(RecordKind.CALL_EVENT, f"Connected to {peer_id}", Severity.INFO)
        elif new == CallState.ENDED:
            await self._log(RecordKind.CALL_EVENT, "Call ended", Severity.SUCCESS)

    # -- Termination --

    async def _on_terminated(self, reason: TerminationReason, total: int) -> None:
        if self._scheduler is not None:
            await self._scheduler.stop()
        if reason == TerminationReason.WARNING_LIMIT:
            await self._log(RecordKind.MALPRACTICE, MALPRACTICE_MESSAGE, Severity.ERROR)
            await self._emit(SessionEventType.MALPRACTICE_DETECTED, {"total_violations": total})
        logger.warning(
            "Session %s terminated (%s) after %d warnings",
            self._id,
            reason,
            total,
            extra={"session_id": self._id, "reason": str(reason)},
        )
        await self._emit(
            SessionEventType.SESSION_TERMINATED,
            {"reason": reason, "total_violations": total},
        )
        self._end_session_span()

    # -- Status --

    def status(self) -> SessionStatus:
        """Return a snapshot of the session's current state."""
        state = self._ledger.state
        detectors = self._scheduler.active_detectors if self._scheduler else []
        return SessionStatus(
            session_id=self._id,
            role=self._role,
            started=self._started,
            endpoint_id=self._endpoint_id,
            call_state=self._call.state,
            peer_id=self._call.session.peer_id,
            no_face_count=state.no_face_count,
            multi_face_count=state.multi_face_count,
            loudness_count=state.loudness_count,
            tab_switch_count=state.tab_switch_count,
            warning_total=state.warning_total,
            warning_limit=self._policy.warning_limit,
            terminated=state.terminated,
            termination_reason=state.termination_reason,
            record_count=len(self._ledger.records),
            active_detectors=[str(kind) for kind in detectors],
        )

    def _require_started(self) -> None:
        if not self._started:
            raise SessionNotStartedError(f"Session {self._id} has not been started")

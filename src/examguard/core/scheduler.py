"""Sampling scheduler: runs detector oracles and emits typed observations."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from examguard.config import SessionConfig
from examguard.detectors.base import FaceOracle, FocusSource, FrameSource, LoudnessOracle
from examguard.models.enums import FocusState, ObservationKind
from examguard.models.observation import Observation
from examguard.telemetry.base import Attr, SpanKind, TelemetryProvider
from examguard.telemetry.noop import NoopTelemetryProvider

logger = logging.getLogger("examguard.scheduler")

# Receives every observation produced by the scheduler (must not block)
ObservationSink = Callable[[Observation], None]

# Receives transient oracle failures: (detector kind, exception)
SensorErrorCallback = Callable[[ObservationKind, Exception], Awaitable[None]]


class SamplingScheduler:
    """Runs each active detector on its own cadence.

    Face and loudness detectors are polled from independent asyncio tasks,
    so a stalled oracle only delays its own next tick.  Focus is
    event-driven: the scheduler subscribes to the ``FocusSource`` and
    forwards one observation per genuine visibility transition.

    ``stop()`` is irreversible.  Once it returns no task is pending and no
    further observation is emitted.
    """

    def __init__(
        self,
        emit: ObservationSink,
        *,
        config: SessionConfig | None = None,
        clock: Callable[[], float],
        face_oracle: FaceOracle | None = None,
        frame_source: FrameSource | None = None,
        loudness_oracle: LoudnessOracle | None = None,
        focus_source: FocusSource | None = None,
        on_sensor_error: SensorErrorCallback | None = None,
        telemetry: TelemetryProvider | None = None,
        session_id: str | None = None,
    ) -> None:
        self._emit_cb = emit
        self._config = config or SessionConfig()
        self._clock = clock
        self._face_oracle = face_oracle
        self._frame_source = frame_source
        self._loudness_oracle = loudness_oracle
        self._focus_source = focus_source
        self._on_sensor_error = on_sensor_error
        self._telemetry = telemetry or NoopTelemetryProvider()
        self._session_id = session_id
        self._tasks: dict[ObservationKind, asyncio.Task[None]] = {}
        self._focus_state = FocusState.VISIBLE
        self._focus_subscribed = False
        self._started = False
        self._stopped = False

    # -- State queries --

    @property
    def face_active(self) -> bool:
        return self._face_oracle is not None and self._frame_source is not None

    @property
    def loudness_active(self) -> bool:
        return self._loudness_oracle is not None

    @property
    def focus_active(self) -> bool:
        return self._focus_source is not None

    @property
    def active_detectors(self) -> list[str]:
        active: list[str] = []
        if self.face_active:
            active.append(ObservationKind.FACE_COUNT)
        if self.loudness_active:
            active.append(ObservationKind.LOUDNESS_LEVEL)
        if self.focus_active:
            active.append(ObservationKind.FOCUS_STATE)
        return active

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    @property
    def stopped(self) -> bool:
        return self._stopped

    # -- Lifecycle --

    def start(self) -> None:
        """Start every active detector.  Must run inside an event loop."""
        if self._stopped:
            raise RuntimeError("SamplingScheduler cannot be restarted after stop()")
        if self._started:
            raise RuntimeError("SamplingScheduler already started")
        self._started = True
        if self.face_active:
            self.schedule_face_sampling(self._config.face_interval_ms)
        if self.loudness_active:
            self.schedule_loudness_sampling(self._config.loudness_interval_ms)
        if self.focus_active:
            self.schedule_focus_sampling()
        logger.info("Sampling started for %s", ", ".join(self.active_detectors) or "no detectors")

    async def stop(self) -> None:
        """Cancel all pending ticks and drop focus notifications."""
        if self._stopped:
            return
        self._stopped = True
        if self._focus_subscribed and self._focus_source is not None:
            self._focus_source.unsubscribe(self._on_focus_change)
            self._focus_subscribed = False
        tasks = list(self._tasks.values())
        self._tasks.clear()
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        for task in tasks:
            if task is current:
                continue
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Sampling stopped")

    # -- Scheduling --

    def schedule_face_sampling(self, period_ms: int = 2000) -> None:
        self._spawn(ObservationKind.FACE_COUNT, period_ms, self.sample_face_once)

    def schedule_loudness_sampling(self, period_ms: int = 500) -> None:
        self._spawn(ObservationKind.LOUDNESS_LEVEL, period_ms, self.sample_loudness_once)

    def schedule_focus_sampling(self) -> None:
        if self._focus_source is None or self._focus_subscribed:
            return
        self._focus_source.subscribe(self._on_focus_change)
        self._focus_subscribed = True

    def _spawn(
        self,
        kind: ObservationKind,
        period_ms: int,
        tick: Callable[[], Awaitable[Any]],
    ) -> None:
        if self._stopped or kind in self._tasks:
            return
        self._tasks[kind] = asyncio.create_task(
            self._run_periodic(kind, period_ms / 1000, tick),
            name=f"examguard-sampler-{kind}",
        )

    async def _run_periodic(
        self,
        kind: ObservationKind,
        period: float,
        tick: Callable[[], Awaitable[Any]],
    ) -> None:
        while not self._stopped:
            await asyncio.sleep(period)
            if self._stopped:
                break
            try:
                await tick()
            except Exception:
                logger.exception("Unexpected error in %s sampler", kind)

    # -- Ticks --

    async def sample_face_once(self) -> Observation | None:
        """Run one face-presence tick.

        Returns the emitted observation, or ``None`` when no frame was
        available, the oracle failed, or the scheduler is stopped.
        """
        if self._stopped or self._face_oracle is None or self._frame_source is None:
            return None
        frame = self._frame_source.current_frame()
        if frame is None:
            return None

        span_id = self._telemetry.start_span(
            SpanKind.DETECTOR_FACE,
            "detector.face",
            session_id=self._session_id,
            attributes={Attr.FRAME_AVAILABLE: True},
        )
        try:
            boxes = await self._face_oracle.estimate(frame)
        except Exception as exc:
            self._telemetry.end_span(span_id, status="error", error_message=str(exc))
            await self._report_error(ObservationKind.FACE_COUNT, exc)
            return None
        self._telemetry.end_span(span_id, attributes={Attr.FACE_COUNT: len(boxes)})
        return self._emit(Observation.face_count(len(boxes), self._clock()))

    async def sample_loudness_once(self) -> Observation | None:
        """Run one loudness tick."""
        if self._stopped or self._loudness_oracle is None:
            return None

        span_id = self._telemetry.start_span(
            SpanKind.DETECTOR_LOUDNESS, "detector.loudness", session_id=self._session_id
        )
        try:
            level = await self._loudness_oracle.sample(self._config.loudness_window_ms)
        except Exception as exc:
            self._telemetry.end_span(span_id, status="error", error_message=str(exc))
            await self._report_error(ObservationKind.LOUDNESS_LEVEL, exc)
            return None
        self._telemetry.end_span(span_id, attributes={Attr.LOUDNESS_LEVEL: level})
        self._telemetry.record_metric(
            "examguard.loudness",
            level,
            attributes={Attr.SESSION_ID: self._session_id or ""},
        )
        return self._emit(Observation.loudness(level, self._clock()))

    def _on_focus_change(self, state: FocusState) -> None:
        if self._stopped:
            return
        state = FocusState(state)
        if state == self._focus_state:
            return
        self._focus_state = state
        self._emit(Observation.focus(state, self._clock()))

    # -- Helpers --

    def _emit(self, observation: Observation) -> Observation | None:
        if self._stopped:
            return None
        self._emit_cb(observation)
        return observation

    async def _report_error(self, kind: ObservationKind, exc: Exception) -> None:
        logger.warning(
            "Transient %s sensor error: %s",
            kind,
            exc,
            extra={"kind": str(kind), "session_id": self._session_id},
        )
        if self._on_sensor_error is not None and not self._stopped:
            await self._on_sensor_error(kind, exc)

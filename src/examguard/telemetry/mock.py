"""In-memory telemetry provider for asserting on exam session spans."""

from __future__ import annotations

from typing import Any

from examguard.telemetry.base import Metric, Span, SpanKind, TelemetryProvider


class MockTelemetryProvider(TelemetryProvider):
    """Keeps finished spans and metric samples in memory.

    Example::

        telemetry = MockTelemetryProvider()
        session = ExamSession(..., telemetry=telemetry)
        await session.start()
        await session.scheduler.sample_face_once()
        span = telemetry.get_spans(SpanKind.DETECTOR_FACE)[0]
        assert span.attributes[Attr.FACE_COUNT] == 1
    """

    def __init__(self) -> None:
        self._active: dict[str, Span] = {}
        self.spans: list[Span] = []
        self.metrics: list[Metric] = []

    @property
    def name(self) -> str:
        return "mock"

    def get_spans(self, kind: SpanKind, *, session_id: str | None = None) -> list[Span]:
        """Finished spans of *kind*, optionally limited to one session."""
        return [
            s
            for s in self.spans
            if s.kind == kind and (session_id is None or s.session_id == session_id)
        ]

    def get_active_spans(self) -> list[Span]:
        return list(self._active.values())

    def get_metrics(self, name: str, *, session_id: str | None = None) -> list[float]:
        return [
            m.value
            for m in self.metrics
            if m.name == name and (session_id is None or m.session_id == session_id)
        ]

    def start_span(
        self,
        kind: SpanKind,
        name: str,
        *,
        parent_id: str | None = None,
        attributes: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> str:
        span = Span(
            kind=kind,
            name=name,
            parent_id=parent_id,
            attributes=dict(attributes or {}),
            session_id=session_id,
        )
        self._active[span.id] = span
        return span.id

    def end_span(self, span_id: str, **kwargs: Any) -> None:
        span = self._active.pop(span_id, None)
        if span is not None:
            self.spans.append(span.finish(**kwargs))

    def set_attribute(self, span_id: str, key: str, value: Any) -> None:
        if span_id in self._active:
            self._active[span_id].attributes[key] = value

    def record_metric(
        self,
        name: str,
        value: float,
        *,
        unit: str = "",
        attributes: dict[str, Any] | None = None,
    ) -> None:
        self.metrics.append(Metric(name, value, unit, dict(attributes or {})))

    def reset(self) -> None:
        self._active.clear()
        self.spans.clear()
        self.metrics.clear()

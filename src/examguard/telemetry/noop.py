"""Telemetry provider used when a session is given none."""

from __future__ import annotations

from typing import Any

from examguard.telemetry.base import SpanKind, TelemetryProvider


class NoopTelemetryProvider(TelemetryProvider):
    """Discards every span and metric.

    ``start_span`` hands back an empty ID, which every other method
    accepts and ignores.
    """

    @property
    def name(self) -> str:
        return "noop"

    def start_span(self, kind: SpanKind, name: str, **kwargs: Any) -> str:
        return ""

    def end_span(self, span_id: str, **kwargs: Any) -> None:
        return None

    def set_attribute(self, span_id: str, key: str, value: Any) -> None:
        return None

    def record_metric(self, name: str, value: float, **kwargs: Any) -> None:
        return None

"""Telemetry provider system for examguard."""

from examguard.telemetry.base import Attr, Metric, Span, SpanKind, TelemetryProvider
from examguard.telemetry.config import TelemetryConfig
from examguard.telemetry.console import ConsoleTelemetryProvider
from examguard.telemetry.mock import MockTelemetryProvider
from examguard.telemetry.noop import NoopTelemetryProvider

__all__ = [
    "Attr",
    "ConsoleTelemetryProvider",
    "Metric",
    "MockTelemetryProvider",
    "NoopTelemetryProvider",
    "Span",
    "SpanKind",
    "TelemetryConfig",
    "TelemetryProvider",
]

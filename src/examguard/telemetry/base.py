"""Telemetry provider ABC, Span dataclass, SpanKind enum, and Attr constants."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class SpanKind(StrEnum):
    """Span classifications for telemetry."""

    EXAM_SESSION = "exam.session"
    DETECTOR_FACE = "detector.face"
    DETECTOR_LOUDNESS = "detector.loudness"
    CALL_DIAL = "call.dial"
    CALL_ANSWER = "call.answer"
    CALL_TERMINATE = "call.terminate"
    CUSTOM = "custom"


class Attr:
    """Well-known attribute key constants for telemetry spans and metrics."""

    # Common
    SESSION_ID = "session_id"
    ROLE = "role"

    # Detectors
    FACE_COUNT = "detector.face_count"
    LOUDNESS_LEVEL = "detector.loudness_level"
    FRAME_AVAILABLE = "detector.frame_available"

    # Ledger
    WARNING_TOTAL = "ledger.warning_total"
    RECORD_KIND = "ledger.record_kind"

    # Call
    CALL_STATE = "call.state"
    PEER_ID = "call.peer_id"

    # Termination
    TERMINATION_REASON = "termination.reason"


@dataclass
class Span:
    """Represents a telemetry span."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    kind: SpanKind = SpanKind.CUSTOM
    name: str = ""
    parent_id: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    status: str = "ok"
    error_message: str | None = None
    session_id: str | None = None

    @property
    def duration_ms(self) -> float | None:
        """Duration in milliseconds, or None if not yet ended."""
        if self.end_time is None:
            return None
        delta = self.end_time - self.start_time
        return delta.total_seconds() * 1000

    @property
    def failed(self) -> bool:
        return self.status == "error"

    def finish(
        self,
        *,
        status: str = "ok",
        error_message: str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> Span:
        """Stamp the end time and final status; returns ``self``."""
        self.end_time = datetime.now(UTC)
        self.status = status
        self.error_message = error_message
        if attributes:
            self.attributes.update(attributes)
        return self


@dataclass(frozen=True)
class Metric:
    """One recorded metric sample."""

    name: str
    value: float
    unit: str = ""
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def session_id(self) -> str | None:
        return self.attributes.get(Attr.SESSION_ID)


class TelemetryProvider(ABC):
    """Abstract base class for telemetry providers.

    Providers collect span and metric data from exam sessions.
    The default ``NoopTelemetryProvider`` has zero overhead.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for identification."""
        ...

    @abstractmethod
    def start_span(
        self,
        kind: SpanKind,
        name: str,
        *,
        parent_id: str | None = None,
        attributes: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> str:
        """Start a new telemetry span.

        Returns:
            A unique span ID string.
        """
        ...

    @abstractmethod
    def end_span(
        self,
        span_id: str,
        *,
        status: str = "ok",
        error_message: str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        """End a previously started span."""
        ...

    @abstractmethod
    def set_attribute(self, span_id: str, key: str, value: Any) -> None:
        """Set an attribute on an active span."""
        ...

    @abstractmethod
    def record_metric(
        self,
        name: str,
        value: float,
        *,
        unit: str = "",
        attributes: dict[str, Any] | None = None,
    ) -> None:
        """Record a metric value."""
        ...

    def close(self) -> None:  # noqa: B027
        """Close the provider and flush any pending data."""

    def reset(self) -> None:  # noqa: B027
        """Reset internal state (useful for testing)."""

    @contextmanager
    def span(
        self,
        kind: SpanKind,
        name: str,
        **kwargs: Any,
    ) -> Generator[str, None, None]:
        """Context manager for span lifecycle.

        Yields the span ID. Automatically ends the span on exit,
        recording error status if an exception occurs.
        """
        span_id = self.start_span(kind, name, **kwargs)
        try:
            yield span_id
            self.end_span(span_id)
        except Exception as exc:
            self.end_span(span_id, status="error", error_message=str(exc))
            raise

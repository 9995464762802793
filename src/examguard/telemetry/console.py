"""Telemetry provider that writes one log line per finished span or metric."""

from __future__ import annotations

import logging
from typing import Any

from examguard.telemetry.base import Attr, Span, SpanKind, TelemetryProvider

logger = logging.getLogger("examguard.telemetry")

# Attributes worth showing inline, in display order
_SHOWN = (
    Attr.ROLE,
    Attr.FACE_COUNT,
    Attr.LOUDNESS_LEVEL,
    Attr.PEER_ID,
    Attr.CALL_STATE,
    Attr.WARNING_TOTAL,
    Attr.TERMINATION_REASON,
)


class ConsoleTelemetryProvider(TelemetryProvider):
    """Logs exam activity to the ``examguard.telemetry`` logger.

    Nothing is logged when a span starts.  When it ends, one line carries
    the session, the span name, its duration and the detector or call
    attributes it collected, for example::

        exam 3f2a91 detector.face 4.1ms face_count=0
        exam 3f2a91 call.dial FAILED 12.0ms peer_id=proctor-7: relay unavailable

    Failed spans are logged at WARNING; everything else at *level*.
    """

    def __init__(self, *, level: int = logging.INFO) -> None:
        self._level = level
        self._active: dict[str, Span] = {}

    @property
    def name(self) -> str:
        return "console"

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
        if span is None:
            return
        span.finish(**kwargs)
        line = f"exam {_short(span.session_id)} {span.name}"
        if span.failed:
            line += " FAILED"
        line += f" {span.duration_ms or 0.0:.1f}ms{_describe(span.attributes)}"
        if span.failed:
            logger.warning("%s: %s", line, span.error_message or "unknown error")
        else:
            logger.log(self._level, "%s", line)

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
        session_id = (attributes or {}).get(Attr.SESSION_ID)
        logger.log(
            self._level, "exam %s %s=%g%s", _short(session_id), name, value, unit
        )

    def close(self) -> None:
        if self._active:
            names = ", ".join(sorted({s.name for s in self._active.values()}))
            logger.warning("Telemetry closed with unfinished spans: %s", names)
        self._active.clear()


def _short(session_id: str | None) -> str:
    return session_id[:6] if session_id else "-"


def _describe(attributes: dict[str, Any]) -> str:
    parts = [
        f"{key.rsplit('.', 1)[-1]}={attributes[key]}" for key in _SHOWN if key in attributes
    ]
    return " " + " ".join(parts) if parts else ""

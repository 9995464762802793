"""Telemetry configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from examguard.telemetry.base import TelemetryProvider


@dataclass
class TelemetryConfig:
    """Configuration for telemetry collection.

    Attributes:
        provider: The telemetry provider to use. Defaults to
            ``NoopTelemetryProvider`` if not set.
        metadata: Extra attributes attached to the session span.
    """

    provider: TelemetryProvider | None = None
    metadata: dict[str, str] = field(default_factory=dict)

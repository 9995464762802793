"""Typed sensor observations."""

from __future__ import annotations

from dataclasses import dataclass

from examguard.models.enums import FocusState, ObservationKind


@dataclass(frozen=True)
class Observation:
    """A single timestamped sensor reading normalized to a typed value.

    ``timestamp`` is in milliseconds on the owning session's clock.  Only
    differences between timestamps are meaningful.
    """

    kind: ObservationKind
    value: int | float | FocusState
    timestamp: float

    @classmethod
    def face_count(cls, count: int, timestamp: float) -> Observation:
        if count < 0:
            raise ValueError("face count must be >= 0")
        return cls(kind=ObservationKind.FACE_COUNT, value=count, timestamp=timestamp)

    @classmethod
    def loudness(cls, level: float, timestamp: float) -> Observation:
        return cls(kind=ObservationKind.LOUDNESS_LEVEL, value=float(level), timestamp=timestamp)

    @classmethod
    def focus(cls, state: FocusState | str, timestamp: float) -> Observation:
        return cls(kind=ObservationKind.FOCUS_STATE, value=FocusState(state), timestamp=timestamp)

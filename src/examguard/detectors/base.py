"""Abstract detector oracles consumed by the sampling scheduler."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from examguard.models.enums import FocusState

# Callback type for visibility changes reported by a FocusSource
FocusCallback = Callable[[FocusState], Any]


@dataclass(frozen=True)
class BoundingBox:
    """A detected face region in frame pixel coordinates."""

    top_left: tuple[float, float]
    bottom_right: tuple[float, float]
    probability: float | None = None


class FaceOracle(ABC):
    """Face-presence model.

    Given a video frame, returns one bounding box per detected face.  May
    raise on model failure; the scheduler treats that as a transient
    sensor error and skips the tick.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Oracle name (e.g. 'blazeface', 'mediapipe')."""
        ...

    @abstractmethod
    async def estimate(self, frame: Any) -> list[BoundingBox]:
        """Detect faces in *frame*."""
        ...

    async def close(self) -> None:
        """Release model resources.

        Override in subclasses that need cleanup.
        """


class LoudnessOracle(ABC):
    """Ambient audio loudness meter.

    Returns the mean magnitude of the most recent audio window as a value
    in ``[0, 255]``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Oracle name."""
        ...

    @abstractmethod
    async def sample(self, window_ms: int) -> float:
        """Return the loudness over the last *window_ms* of audio."""
        ...

    async def close(self) -> None:
        """Release audio resources.

        Override in subclasses that need cleanup.
        """


class FrameSource(ABC):
    """Provides the most recent local video frame, if any."""

    @abstractmethod
    def current_frame(self) -> Any | None:
        """Return the latest frame or ``None`` when no frame is available."""
        ...


class FocusSource(ABC):
    """Push-based foreground-tab visibility notifications.

    Implementations call every subscribed callback when the page or window
    visibility changes.  They may report the same state twice; the
    scheduler only forwards genuine transitions.
    """

    @abstractmethod
    def subscribe(self, callback: FocusCallback) -> None:
        """Register *callback* for visibility changes."""
        ...

    @abstractmethod
    def unsubscribe(self, callback: FocusCallback) -> None:
        """Remove a previously registered callback."""
        ...

"""Mock detector oracles for testing."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from examguard.detectors.base import (
    BoundingBox,
    FaceOracle,
    FocusCallback,
    FocusSource,
    FrameSource,
    LoudnessOracle,
)
from examguard.models.enums import FocusState


@dataclass
class MockDetectorCall:
    """Record of a call made to a mock oracle."""

    method: str
    args: dict[str, Any] = field(default_factory=dict)


def _boxes(count: int) -> list[BoundingBox]:
    return [
        BoundingBox(
            top_left=(10.0 * i, 10.0),
            bottom_right=(10.0 * i + 8.0, 18.0),
            probability=0.99,
        )
        for i in range(count)
    ]


class MockFaceOracle(FaceOracle):
    """Face oracle returning scripted face counts.

    Each entry of *results* is either a face count or an exception
    instance to raise.  When the script is exhausted the last
    ``default`` count is returned.

    Example:
        oracle = MockFaceOracle([1, 0, RuntimeError("model crashed")], default=1)
    """

    def __init__(self, results: Iterable[int | Exception] = (), *, default: int = 1) -> None:
        self._results: deque[int | Exception] = deque(results)
        self.default = default
        self.calls: list[MockDetectorCall] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    @property
    def name(self) -> str:
        return "MockFaceOracle"

    def push(self, *results: int | Exception) -> None:
        self._results.extend(results)

    async def estimate(self, frame: Any) -> list[BoundingBox]:
        self.calls.append(MockDetectorCall(method="estimate", args={"frame": frame}))
        if self.gate is not None:
            await self.gate.wait()
        result = self._results.popleft() if self._results else self.default
        if isinstance(result, Exception):
            raise result
        return _boxes(result)

    async def close(self) -> None:
        self.closed = True


class MockLoudnessOracle(LoudnessOracle):
    """Loudness oracle returning scripted levels."""

    def __init__(
        self, levels: Iterable[float | Exception] = (), *, default: float = 0.0
    ) -> None:
        self._levels: deque[float | Exception] = deque(levels)
        self.default = default
        self.calls: list[MockDetectorCall] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "MockLoudnessOracle"

    def push(self, *levels: float | Exception) -> None:
        self._levels.extend(levels)

    async def sample(self, window_ms: int) -> float:
        self.calls.append(MockDetectorCall(method="sample", args={"window_ms": window_ms}))
        level = self._levels.popleft() if self._levels else self.default
        if isinstance(level, Exception):
            raise level
        return level

    async def close(self) -> None:
        self.closed = True


class StaticFrameSource(FrameSource):
    """Frame source that always returns the same frame (or none)."""

    def __init__(self, frame: Any | None = b"frame") -> None:
        self.frame = frame

    def current_frame(self) -> Any | None:
        return self.frame


class MockFocusSource(FocusSource):
    """Focus source driven by :meth:`simulate`."""

    def __init__(self) -> None:
        self._callbacks: list[FocusCallback] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)

    def subscribe(self, callback: FocusCallback) -> None:
        self._callbacks.append(callback)

    def unsubscribe(self, callback: FocusCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def simulate(self, state: FocusState | str) -> None:
        """Deliver a visibility change to every subscriber."""
        for cb in list(self._callbacks):
            cb(FocusState(state))

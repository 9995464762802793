"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any

import pytest

from examguard.config import SessionConfig
from examguard.core.ledger import ViolationLedger
from examguard.detectors.mock import (
    MockFaceOracle,
    MockFocusSource,
    MockLoudnessOracle,
    StaticFrameSource,
)
from examguard.signaling.mock import MockMediaProvider, MockPeerConnector, MockSignalingTransport


@pytest.fixture
def advance() -> Callable[[int], Coroutine[Any, Any, None]]:
    """Yield control to let pending tasks run without real delay.

    Replaces ``await asyncio.sleep(0.05)`` patterns with zero-delay
    event loop yields::

        await advance()       # 5 yields (default)
        await advance(10)     # 10 yields for heavier workloads
    """

    async def _advance(n: int = 5) -> None:
        for _ in range(n):
            await asyncio.sleep(0)

    return _advance


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def tick(self, ms: float) -> float:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> SessionConfig:
    return SessionConfig()


@pytest.fixture
def ledger(config: SessionConfig) -> ViolationLedger:
    return ViolationLedger(config)


@pytest.fixture
def face_oracle() -> MockFaceOracle:
    return MockFaceOracle()


@pytest.fixture
def loudness_oracle() -> MockLoudnessOracle:
    return MockLoudnessOracle()


@pytest.fixture
def frame_source() -> StaticFrameSource:
    return StaticFrameSource()


@pytest.fixture
def focus_source() -> MockFocusSource:
    return MockFocusSource()


@pytest.fixture
def transport() -> MockSignalingTransport:
    return MockSignalingTransport()


@pytest.fixture
def media() -> MockMediaProvider:
    return MockMediaProvider()


@pytest.fixture
def connector() -> MockPeerConnector:
    return MockPeerConnector()

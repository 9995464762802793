"""Session event model delivered to presentation-layer handlers."""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from examguard.models.enums import SessionEventType


class SessionEvent(BaseModel):
    """An event emitted by an exam session."""

    type: SessionEventType
    session_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = Field(default_factory=dict)


SessionEventHandler = Callable[[SessionEvent], Coroutine[Any, Any, None]]

"""Read-only snapshot of an exam session."""

from __future__ import annotations

from pydantic import BaseModel, Field

from examguard.models.enums import CallState, Role, TerminationReason


class SessionStatus(BaseModel):
    """Status information for an exam session."""

    session_id: str
    role: Role
    started: bool = False
    endpoint_id: str | None = None
    call_state: CallState = CallState.IDLE
    peer_id: str | None = None
    no_face_count: int = 0
    multi_face_count: int = 0
    loudness_count: int = 0
    tab_switch_count: int = 0
    warning_total: int = 0
    warning_limit: int
    terminated: bool = False
    termination_reason: TerminationReason | None = None
    record_count: int = 0
    active_detectors: list[str] = Field(default_factory=list)

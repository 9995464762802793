"""Tests for data models and enums."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from examguard.errors import ExamGuardError, InvalidCallTransitionError
from examguard.models.enums import (
    POLICY_KINDS,
    CallState,
    FocusState,
    ObservationKind,
    RecordKind,
    SessionEventType,
    Severity,
)
from examguard.models.observation import Observation
from examguard.models.record import LedgerState, ViolationRecord
from examguard.models.session_event import SessionEvent
from examguard.models.status import SessionStatus


class TestEnums:
    def test_record_kind_values(self) -> None:
        assert RecordKind.NO_FACE == "no-face"
        assert RecordKind.LOUD_NOISE == "loud-noise"
        assert RecordKind.TAB_SWITCH == "tab-switch"

    def test_policy_kinds(self) -> None:
        assert POLICY_KINDS == {
            RecordKind.NO_FACE,
            RecordKind.MULTI_FACE,
            RecordKind.LOUD_NOISE,
            RecordKind.TAB_SWITCH,
        }

    def test_event_type_values(self) -> None:
        assert SessionEventType.SESSION_TERMINATED == "session-terminated"
        assert SessionEventType("counts-changed") == SessionEventType.COUNTS_CHANGED


class TestObservation:
    def test_constructors(self) -> None:
        assert Observation.face_count(2, 10).kind == ObservationKind.FACE_COUNT
        assert Observation.loudness(3, 10).value == 3.0
        assert Observation.focus("hidden", 10).value == FocusState.HIDDEN

    def test_invalid_focus_state(self) -> None:
        with pytest.raises(ValueError):
            Observation.focus("minimized", 0)


class TestViolationRecord:
    def test_is_warning(self) -> None:
        record = ViolationRecord(
            seq=0,
            kind=RecordKind.NO_FACE,
            message="No face detected",
            severity=Severity.WARNING,
            timestamp=0,
        )
        assert record.is_warning
        assert record.created_at is not None

    def test_negative_seq_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ViolationRecord(
                seq=-1,
                kind=RecordKind.CALL_EVENT,
                message="x",
                severity=Severity.INFO,
                timestamp=0,
            )


class TestLedgerState:
    def test_defaults(self) -> None:
        state = LedgerState()
        assert state.warning_total == 0
        assert state.tab_active
        assert not state.terminated
        assert state.termination_reason is None


class TestSessionModels:
    def test_session_event(self) -> None:
        event = SessionEvent(type="log-appended", session_id="s1")
        assert event.type == SessionEventType.LOG_APPENDED
        assert event.data == {}

    def test_status_requires_limit(self) -> None:
        with pytest.raises(ValidationError):
            SessionStatus(session_id="s1", role="candidate")  # type: ignore[call-arg]
        status = SessionStatus(session_id="s1", role="candidate", warning_limit=10)
        assert status.call_state == CallState.IDLE


class TestErrors:
    def test_invalid_transition_message(self) -> None:
        err = InvalidCallTransitionError("answer", CallState.IDLE)
        assert isinstance(err, ExamGuardError)
        assert str(err) == "Cannot answer while call is idle"
        assert err.operation == "answer"

"""Violation ledger: turns observations into append-only records."""

from __future__ import annotations

import logging

from examguard.config import SessionConfig
from examguard.models.enums import (
    FocusState,
    ObservationKind,
    RecordKind,
    Severity,
    TerminationReason,
)
from examguard.models.observation import Observation
from examguard.models.record import LedgerState, ViolationRecord

logger = logging.getLogger("examguard.ledger")

_MESSAGES: dict[RecordKind, str] = {
    RecordKind.NO_FACE: "No face detected",
    RecordKind.MULTI_FACE: "Multiple faces detected",
    RecordKind.LOUD_NOISE: "Loud noise detected",
    RecordKind.TAB_SWITCH: "Tab switched away from exam",
}


class ViolationLedger:
    """Append-only log of violation records with per-kind policy.

    ``append`` and ``log`` never await, so a record and the matching
    ``warning_total`` increment are always observed together by any other
    coroutine on the same event loop.

    Policy:

    * ``face_count == 0`` -> ``no-face`` warning
    * ``face_count > 1`` -> ``multi-face`` warning
    * ``face_count == 1`` -> no record, clears the visual alert
    * ``loudness > noise_threshold`` -> ``loud-noise`` warning, at most one
      per ``debounce_ms``
    * ``focus == hidden`` -> ``tab-switch`` warning
    """

    def __init__(self, config: SessionConfig | None = None) -> None:
        self._config = config or SessionConfig()
        self._state = LedgerState()
        self._records: list[ViolationRecord] = []
        self._last_loud_noise_at: float | None = None

    @property
    def state(self) -> LedgerState:
        return self._state

    @property
    def records(self) -> tuple[ViolationRecord, ...]:
        """Snapshot of all records in creation order."""
        return tuple(self._records)

    @property
    def warning_total(self) -> int:
        return self._state.warning_total

    @property
    def terminated(self) -> bool:
        return self._state.terminated

    def counts(self) -> dict[str, int]:
        return {
            "no_face": self._state.no_face_count,
            "multi_face": self._state.multi_face_count,
            "loudness": self._state.loudness_count,
            "tab_switch": self._state.tab_switch_count,
        }

    # -- Policy --

    def append(self, observation: Observation) -> ViolationRecord | None:
        """Apply policy to *observation* and return the record it produced.

        Returns ``None`` when the observation crosses no threshold, is
        debounced, or arrives after termination.
        """
        if self._state.terminated:
            logger.debug("Discarding %s observation after termination", observation.kind)
            return None

        if observation.kind == ObservationKind.FACE_COUNT:
            return self._apply_face(observation)
        if observation.kind == ObservationKind.LOUDNESS_LEVEL:
            return self._apply_loudness(observation)
        if observation.kind == ObservationKind.FOCUS_STATE:
            return self._apply_focus(observation)
        raise ValueError(f"Unknown observation kind: {observation.kind!r}")

    def _apply_face(self, observation: Observation) -> ViolationRecord | None:
        count = int(observation.value)
        if count == 1:
            self._state.alert_active = False
            return None
        if count == 0:
            self._state.no_face_count += 1
            kind = RecordKind.NO_FACE
        else:
            self._state.multi_face_count += 1
            kind = RecordKind.MULTI_FACE
        return self._write_policy(kind, observation.timestamp)

    def _apply_loudness(self, observation: Observation) -> ViolationRecord | None:
        level = float(observation.value)
        if level <= self._config.noise_threshold:
            self._state.loud_noise_active = False
            return None
        last = self._last_loud_noise_at
        if last is not None and observation.timestamp - last < self._config.debounce_ms:
            self._state.loud_noise_active = False
            return None
        self._last_loud_noise_at = observation.timestamp
        self._state.loudness_count += 1
        self._state.loud_noise_active = True
        return self._write_policy(RecordKind.LOUD_NOISE, observation.timestamp)

    def _apply_focus(self, observation: Observation) -> ViolationRecord | None:
        if observation.value == FocusState.VISIBLE:
            self._state.tab_active = True
            return None
        self._state.tab_active = False
        self._state.tab_switch_count += 1
        return self._write_policy(RecordKind.TAB_SWITCH, observation.timestamp)

    def _write_policy(self, kind: RecordKind, timestamp: float) -> ViolationRecord:
        severity = Severity.WARNING if self._config.counts(kind) else Severity.INFO
        self._state.alert_active = True
        return self._write(kind, _MESSAGES[kind], severity, timestamp)

    # -- Non-policy entries --

    def log(
        self,
        kind: RecordKind,
        message: str,
        severity: Severity,
        timestamp: float,
    ) -> ViolationRecord:
        """Append an informational, error, or success entry.

        Warning severity is reserved for policy records so that
        ``warning_total`` only ever reflects observed violations.
        """
        if severity == Severity.WARNING:
            raise ValueError("warning records can only be produced from observations")
        return self._write(kind, message, severity, timestamp)

    def _write(
        self, kind: RecordKind, message: str, severity: Severity, timestamp: float
    ) -> ViolationRecord:
        record = ViolationRecord(
            seq=len(self._records),
            kind=kind,
            message=message,
            severity=severity,
            timestamp=timestamp,
        )
        self._records.append(record)
        if record.is_warning:
            self._state.warning_total += 1
        logger.debug(
            "Ledger record %d: %s (%s)",
            record.seq,
            record.message,
            record.severity,
            extra={"kind": str(kind), "warning_total": self._state.warning_total},
        )
        return record

    # -- Termination (written only by TerminationPolicy) --

    def _mark_terminated(self, reason: TerminationReason) -> bool:
        if self._state.terminated:
            return False
        self._state.terminated = True
        self._state.termination_reason = reason
        return True

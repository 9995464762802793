"""Violation ledger records and running state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from examguard.models.enums import RecordKind, Severity, TerminationReason


class ViolationRecord(BaseModel):
    """A logged ledger entry with severity and timestamp.

    Records are immutable once written.  ``seq`` is the creation index and
    doubles as the display order.
    """

    model_config = ConfigDict(frozen=True)

    seq: int = Field(ge=0)
    kind: RecordKind
    message: str
    severity: Severity
    timestamp: float
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_warning(self) -> bool:
        return self.severity == Severity.WARNING


@dataclass
class LedgerState:
    """Running counters owned by the violation ledger.

    ``terminated`` is written only by the termination policy and never
    goes back to ``False``.
    """

    no_face_count: int = 0
    multi_face_count: int = 0
    loudness_count: int = 0
    tab_switch_count: int = 0
    warning_total: int = 0
    terminated: bool = False
    termination_reason: TerminationReason | None = None
    # Presentation flags
    alert_active: bool = False
    loud_noise_active: bool = False
    tab_active: bool = True

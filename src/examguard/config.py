"""Session configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from examguard.models.enums import POLICY_KINDS, RecordKind, Role


class SessionConfig(BaseModel):
    """Tunable thresholds and cadences for an exam session.

    Attributes:
        face_interval_ms: Period between face-presence samples.
        loudness_interval_ms: Period between loudness samples.
        loudness_window_ms: Audio window handed to the loudness oracle.
        noise_threshold: Loudness (0-255) above which a sample is a violation.
        warning_limit: Number of counted warnings that terminates the session.
        debounce_ms: Minimum spacing between two ``loud-noise`` records.
        monitored_role: The role whose device runs the detectors.
        face_detection: Enable the face-presence detector.
        audio_detection: Enable the loudness detector.
        focus_detection: Enable the tab-focus detector.
        counted_kinds: Policy record kinds that count toward
            ``warning_limit``.  ``None`` counts every policy kind.
    """

    face_interval_ms: int = Field(default=2000, gt=0)
    loudness_interval_ms: int = Field(default=500, gt=0)
    loudness_window_ms: int = Field(default=500, gt=0)
    noise_threshold: float = Field(default=24.0, ge=0.0, le=255.0)
    warning_limit: int = Field(default=10, gt=0)
    debounce_ms: int = Field(default=1000, ge=0)
    monitored_role: Role = Role.CANDIDATE
    face_detection: bool = True
    audio_detection: bool = True
    focus_detection: bool = True
    counted_kinds: frozenset[RecordKind] | None = None

    @field_validator("counted_kinds")
    @classmethod
    def _validate_counted_kinds(
        cls, v: frozenset[RecordKind] | None
    ) -> frozenset[RecordKind] | None:
        if v is None:
            return v
        unknown = v - POLICY_KINDS
        if unknown:
            names = ", ".join(sorted(unknown))
            raise ValueError(f"counted_kinds may only contain policy kinds, got {names}")
        return v

    def counts(self, kind: RecordKind) -> bool:
        """Return True if records of *kind* count toward the warning limit."""
        if kind not in POLICY_KINDS:
            return False
        return self.counted_kinds is None or kind in self.counted_kinds

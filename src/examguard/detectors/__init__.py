"""Detector oracles for face presence, loudness, and tab focus."""

from examguard.detectors.base import (
    BoundingBox,
    FaceOracle,
    FocusCallback,
    FocusSource,
    FrameSource,
    LoudnessOracle,
)
from examguard.detectors.mock import (
    MockDetectorCall,
    MockFaceOracle,
    MockFocusSource,
    MockLoudnessOracle,
    StaticFrameSource,
)

__all__ = [
    "BoundingBox",
    "FaceOracle",
    "FocusCallback",
    "FocusSource",
    "FrameSource",
    "LoudnessOracle",
    "MockDetectorCall",
    "MockFaceOracle",
    "MockFocusSource",
    "MockLoudnessOracle",
    "StaticFrameSource",
]

"""Data models for the micprocess application."""

from .session import CaptureState, CaptureSession, ControlResult
from .audio import CaptureStats
from .events import AudioEvent, StatusEvent

__all__ = [
    "CaptureState",
    "CaptureSession",
    "ControlResult",
    "CaptureStats",
    "AudioEvent",
    "StatusEvent",
]

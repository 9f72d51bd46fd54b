"""Capture session models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..errors import MicrophoneError


class CaptureState(Enum):
    """Controller state."""
    IDLE = "idle"
    CAPTURING = "capturing"


@dataclass
class CaptureSession:
    """Live binding between a microphone stream and its processing graph."""
    session_id: str
    stream: Any  # MediaStream from audio.stream
    graph: Any   # AudioGraph from audio.graph
    processor: Any = None
    started_at: datetime = field(default_factory=datetime.now)


@dataclass
class ControlResult:
    """Outcome of a start or stop request."""
    success: bool
    state: CaptureState
    message: str = ""
    error: Optional[MicrophoneError] = None
    session_id: Optional[str] = None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

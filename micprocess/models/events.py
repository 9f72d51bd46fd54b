"""Event models published over pubsub."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .session import CaptureState
from ..errors import MicrophoneError


@dataclass
class AudioEvent:
    """Rendered audio block with metadata."""
    block_id: str
    timestamp: float  # Unix timestamp when the block was rendered
    sequence_number: int
    peak_level: float
    sample_rate: int = 16000
    channels: int = 1
    frames: int = 0
    block_duration_ms: Optional[int] = None

    def __post_init__(self):
        """Calculate block duration if not provided."""
        if self.block_duration_ms is None and self.frames:
            self.block_duration_ms = int(self.frames / self.sample_rate * 1000)


@dataclass
class StatusEvent:
    """Human-readable controller status message."""
    message: str
    state: Optional[CaptureState] = None
    error: Optional[MicrophoneError] = None
    timestamp: datetime = field(default_factory=datetime.now)

"""Audio-related data models."""

from dataclasses import dataclass


@dataclass
class CaptureStats:
    """Render statistics for an audio graph."""
    is_running: bool
    duration_seconds: float
    sample_rate: int
    block_size: int
    total_blocks: int

"""Audio processors that can be inserted between a source and the output.

A processor module is any importable module (or ``.py`` file) defining
subclasses of :class:`AudioProcessor` with a non-empty ``name``. Loading
the module into an :class:`~micprocess.audio.graph.AudioGraph` registers
every such class under its ``name``.

Blocks are float32 numpy arrays shaped ``(frames, channels)`` with samples
in ``[-1, 1]``.
"""

import time
import logging
from typing import Optional

import numpy as np
from scipy import signal

from .audio_pub import AudioPublisher
from ..models.events import AudioEvent

logger = logging.getLogger(__name__)


class AudioProcessor:
    """Base class for processors. Subclasses set ``name`` and override ``process``."""

    name = ""

    def __init__(self, sample_rate: int = 16000, channels: int = 1, **options):
        self.sample_rate = sample_rate
        self.channels = channels
        self.options = options

    def process(self, block: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def close(self) -> None:
        """Release processor resources. Called when the graph closes."""


class PassthroughProcessor(AudioProcessor):
    name = "passthrough"

    def process(self, block: np.ndarray) -> np.ndarray:
        return block


class GainProcessor(AudioProcessor):
    """Scales the signal by a constant factor."""

    name = "gain"

    def __init__(self, sample_rate: int = 16000, channels: int = 1, gain: float = 1.0, **options):
        super().__init__(sample_rate, channels, **options)
        if gain < 0:
            raise ValueError(f"Gain must be non-negative, got {gain}")
        self.gain = float(gain)

    def process(self, block: np.ndarray) -> np.ndarray:
        return np.clip(block * self.gain, -1.0, 1.0).astype(np.float32)


class LevelMeterProcessor(AudioProcessor):
    """Passes audio through and publishes the peak level of every block."""

    name = "level-meter"

    def __init__(self, sample_rate: int = 16000, channels: int = 1,
                 topic: str = "audio.level", **options):
        super().__init__(sample_rate, channels, **options)
        self.publisher = AudioPublisher(topic)
        self.blocks = 0
        self.peak_level = 0.0

    def process(self, block: np.ndarray) -> np.ndarray:
        self.blocks += 1
        self.peak_level = float(np.max(np.abs(block))) if block.size else 0.0
        self.publisher.publish_audio_event(AudioEvent(
            block_id=f"block_{self.blocks}",
            timestamp=time.time(),
            sequence_number=self.blocks,
            peak_level=self.peak_level,
            sample_rate=self.sample_rate,
            channels=self.channels,
            frames=block.shape[0],
        ))
        return block


class HighpassProcessor(AudioProcessor):
    """Butterworth high-pass filter; filter state carries over between blocks."""

    name = "highpass"

    def __init__(self, sample_rate: int = 16000, channels: int = 1,
                 cutoff_hz: float = 100.0, order: int = 4, **options):
        super().__init__(sample_rate, channels, **options)
        if not 0 < cutoff_hz < sample_rate / 2:
            raise ValueError(f"Cutoff {cutoff_hz}Hz must be between 0 and Nyquist ({sample_rate / 2}Hz)")
        self.cutoff_hz = cutoff_hz
        self.sos = signal.butter(order, cutoff_hz, btype="highpass", fs=sample_rate, output="sos")
        self._zi: Optional[np.ndarray] = None

    def process(self, block: np.ndarray) -> np.ndarray:
        if self._zi is None or self._zi.shape[2] != block.shape[1]:
            self._zi = np.zeros((self.sos.shape[0], 2, block.shape[1]))
        filtered, self._zi = signal.sosfilt(self.sos, block, axis=0, zi=self._zi)
        return filtered.astype(np.float32)

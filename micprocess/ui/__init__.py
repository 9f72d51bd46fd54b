"""Terminal controls for micprocess."""

from .controls import Control, MicrophoneControls

__all__ = ["Control", "MicrophoneControls"]

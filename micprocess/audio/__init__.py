"""Audio capture, graph and processing module."""

from .host import PyAudioHost, CaptureConstraints
from .stream import MediaStream, MediaTrack
from .graph import AudioGraph
from .processors import AudioProcessor

__all__ = [
    'PyAudioHost',
    'CaptureConstraints',
    'MediaStream',
    'MediaTrack',
    'AudioGraph',
    'AudioProcessor',
]

"""Captured microphone streams and their hardware tracks."""

import logging
import threading
import uuid
from typing import List, Optional

import pyaudio

from ..errors import InvalidStateError

logger = logging.getLogger(__name__)


class MediaTrack:
    """A single hardware audio track backed by a PyAudio input stream."""

    kind = "audio"

    def __init__(self, pa_stream: pyaudio.Stream, label: str, channels: int = 1):
        """Initialize track.

        Args:
            pa_stream: Open PyAudio input stream
            label: Human-readable device name
            channels: Number of channels delivered by the stream
        """
        self.id = str(uuid.uuid4())
        self.label = label
        self.channels = channels
        self.ready_state = "live"
        self._pa_stream: Optional[pyaudio.Stream] = pa_stream
        self._lock = threading.Lock()
        self._on_ended = None

    def read(self, frames: int) -> bytes:
        """Read a block of int16 frames from the device.

        Raises:
            InvalidStateError: If the track has been stopped
        """
        with self._lock:
            if self.ready_state != "live":
                raise InvalidStateError(f"Track {self.label} has ended")
            return self._pa_stream.read(frames, exception_on_overflow=False)

    def stop(self) -> None:
        """Stop the track and release the hardware stream. Safe to call twice."""
        with self._lock:
            if self.ready_state == "ended":
                return
            self.ready_state = "ended"
            pa_stream, self._pa_stream = self._pa_stream, None

        try:
            pa_stream.stop_stream()
            pa_stream.close()
        except OSError as e:
            logger.warning(f"Error closing input stream for {self.label}: {e}")

        logger.info(f"Track stopped: {self.label} ({self.id})")
        if self._on_ended:
            self._on_ended(self)


class MediaStream:
    """Collection of tracks returned by a capture request."""

    def __init__(self, tracks: List[MediaTrack], pyaudio_instance: Optional[pyaudio.PyAudio] = None):
        self.id = str(uuid.uuid4())
        self._tracks = list(tracks)
        self._pyaudio_instance = pyaudio_instance
        for track in self._tracks:
            track._on_ended = self._track_ended

    def get_tracks(self) -> List[MediaTrack]:
        return list(self._tracks)

    def get_audio_tracks(self) -> List[MediaTrack]:
        return [t for t in self._tracks if t.kind == "audio"]

    @property
    def active(self) -> bool:
        return any(t.ready_state == "live" for t in self._tracks)

    def _track_ended(self, track: MediaTrack) -> None:
        # PyAudio instance goes once the last track is gone
        if not self.active and self._pyaudio_instance:
            self._pyaudio_instance.terminate()
            self._pyaudio_instance = None
            logger.debug(f"Stream {self.id} released its audio interface")

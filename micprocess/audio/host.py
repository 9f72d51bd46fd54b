"""Host environment: microphone permission and capture via PyAudio."""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import pyaudio
from rich.prompt import Confirm

from .stream import MediaStream, MediaTrack
from ..errors import DeviceUnavailableError, PermissionDeniedError

logger = logging.getLogger(__name__)


@dataclass
class CaptureConstraints:
    """What a capture request asks the host for."""
    audio: bool = True
    video: bool = False
    device_index: Optional[int] = None
    sample_rate: int = 16000
    channels: int = 1
    block_size: int = 1024


PermissionPrompt = Callable[[CaptureConstraints], bool]


def console_permission_prompt(constraints: CaptureConstraints) -> bool:
    """Ask on the terminal whether the microphone may be used."""
    return Confirm.ask("Allow this application to use your microphone?", default=False)


def permission_policy(policy: str, prompt: Optional[PermissionPrompt] = None) -> PermissionPrompt:
    """Build a permission prompt from a config policy name.

    Args:
        policy: One of 'granted', 'denied' or 'prompt'
        prompt: Interactive prompt used for the 'prompt' policy

    Returns:
        Callable deciding whether a capture request is allowed
    """
    if policy == "granted":
        return lambda constraints: True
    if policy == "denied":
        return lambda constraints: False
    if policy == "prompt":
        return prompt or console_permission_prompt
    raise ValueError(f"Unknown microphone permission policy: {policy}")


class PyAudioHost:
    """Grants audio capture through PyAudio after asking for permission."""

    def __init__(self, permission_prompt: PermissionPrompt, format: int = pyaudio.paInt16):
        """Initialize host.

        Args:
            permission_prompt: Callable deciding whether capture is allowed.
                May block until the user answers.
            format: PyAudio sample format for input streams
        """
        self.permission_prompt = permission_prompt
        self.format = format

    def list_input_devices(self) -> List[Dict]:
        """List input-capable devices as dicts with index, name, channels and rate."""
        pa = pyaudio.PyAudio()
        try:
            return self._input_devices(pa)
        finally:
            pa.terminate()

    def _input_devices(self, pa: pyaudio.PyAudio) -> List[Dict]:
        devices = []
        for index in range(pa.get_device_count()):
            info = pa.get_device_info_by_index(index)
            if info.get("maxInputChannels", 0) > 0:
                devices.append({
                    "index": index,
                    "name": info.get("name", f"device {index}"),
                    "channels": info["maxInputChannels"],
                    "default_sample_rate": info.get("defaultSampleRate"),
                })
        return devices

    def _select_device(self, pa: pyaudio.PyAudio, constraints: CaptureConstraints) -> Dict:
        devices = self._input_devices(pa)
        if not devices:
            raise DeviceUnavailableError("No microphone found")

        if constraints.device_index is not None:
            for device in devices:
                if device["index"] == constraints.device_index:
                    return device
            raise DeviceUnavailableError(f"Input device {constraints.device_index} not available")

        try:
            default_index = pa.get_default_input_device_info()["index"]
        except OSError:
            logger.debug("No default input device, using first available")
            return devices[0]
        for device in devices:
            if device["index"] == default_index:
                return device
        return devices[0]

    def get_user_media(self, constraints: CaptureConstraints) -> MediaStream:
        """Request microphone capture.

        Blocks until the permission prompt is answered and the device is open.

        Raises:
            PermissionDeniedError: If the user refuses access
            DeviceUnavailableError: If no input device can be opened
        """
        if constraints.video or not constraints.audio:
            raise DeviceUnavailableError("Only audio-only capture is supported")

        logger.info("Requesting microphone access")
        if not self.permission_prompt(constraints):
            logger.warning("Microphone permission denied")
            raise PermissionDeniedError("Permission to use the microphone was denied")

        pa = pyaudio.PyAudio()
        try:
            device = self._select_device(pa, constraints)
            pa_stream = pa.open(
                format=self.format,
                channels=constraints.channels,
                rate=constraints.sample_rate,
                input=True,
                input_device_index=device["index"],
                frames_per_buffer=constraints.block_size,
            )
        except DeviceUnavailableError:
            pa.terminate()
            raise
        except OSError as e:
            pa.terminate()
            raise DeviceUnavailableError(f"Could not open microphone: {e}") from e

        logger.info(f"Microphone opened: {device['name']} at {constraints.sample_rate}Hz, "
                    f"{constraints.block_size} frames/block")
        track = MediaTrack(pa_stream, label=device["name"], channels=constraints.channels)
        return MediaStream([track], pyaudio_instance=pa)

"""Pytest configuration and fixtures for micprocess tests."""

import time
import pytest
import tempfile
import logging
import textwrap
from pathlib import Path
from unittest.mock import Mock, patch
import numpy as np
from pubsub import pub

from micprocess.audio.host import PyAudioHost
from micprocess.controller import MicrophoneController


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    for marker in ("unit", "integration", "slow", "hardware"):
        config.addinivalue_line("markers", f"{marker}: {marker} tests")


@pytest.fixture(autouse=True)
def reset_pubsub():
    """Drop pubsub listeners registered by a test."""
    yield
    pub.unsubAll()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def sample_audio_chunk():
    """Generate 1024 frames of 16-bit mono audio (440Hz sine at half scale)."""
    sample_rate = 16000
    duration = 1024 / sample_rate
    t = np.linspace(0, duration, 1024, False)
    wave_data = 0.5 * np.sin(2 * np.pi * 440 * t)
    return (wave_data * 32767).astype(np.int16).tobytes()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio with one input device, for testing without audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        def read(frames, exception_on_overflow=True):
            time.sleep(0.002)
            return b'\x00' * (frames * 2)

        # Configure mock stream
        mock_stream.read.side_effect = read
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.get_device_count.return_value = 1
        mock_pyaudio_instance.get_device_info_by_index.return_value = {
            "index": 0,
            "name": "Mock Microphone",
            "maxInputChannels": 1,
            "defaultSampleRate": 16000.0,
        }
        mock_pyaudio_instance.get_default_input_device_info.return_value = {"index": 0}
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def no_input_devices(mock_pyaudio):
    """Mock PyAudio reporting only output devices."""
    mock_pyaudio['instance'].get_device_info_by_index.return_value = {
        "index": 0,
        "name": "Speakers",
        "maxInputChannels": 0,
        "defaultSampleRate": 48000.0,
    }
    mock_pyaudio['instance'].get_default_input_device_info.side_effect = OSError("No Default Input Device Available")
    return mock_pyaudio


@pytest.fixture
def status_events():
    """Collects (message, state, error) tuples emitted by a controller."""
    return []


@pytest.fixture
def status_messages():
    """Message text of each status event, in order."""
    return []


@pytest.fixture
def record_status(status_events, status_messages):
    """Status callback that records every event."""
    def callback(message, state, error=None):
        status_events.append((message, state, error))
        status_messages.append(message)
    return callback


@pytest.fixture
def granted_controller(mock_pyaudio, record_status):
    """Controller whose permission prompt always grants access."""
    controller = MicrophoneController(
        host=PyAudioHost(lambda constraints: True),
        status_callback=record_status,
    )
    yield controller
    controller.shutdown()


@pytest.fixture
def denied_controller(mock_pyaudio, record_status):
    """Controller whose permission prompt always refuses access."""
    return MicrophoneController(
        host=PyAudioHost(lambda constraints: False),
        status_callback=record_status,
    )


@pytest.fixture
def processor_module_file(temp_data_dir):
    """Write a processor module to disk, like a worklet script."""
    path = Path(temp_data_dir) / "processor.py"
    path.write_text(textwrap.dedent('''
        import numpy as np
        from micprocess.audio.processors import AudioProcessor


        class InvertProcessor(AudioProcessor):
            name = "invert"

            def process(self, block):
                return -block
    '''))
    return str(path)

"""Unit tests for AudioGraph."""

import time
import pytest
import numpy as np
from unittest.mock import Mock

from micprocess.audio.graph import AudioGraph, DestinationNode, pcm16_to_float, float_to_pcm16
from micprocess.audio.processors import AudioProcessor
from micprocess.audio.stream import MediaStream, MediaTrack
from micprocess.errors import InvalidStateError, ModuleLoadError


class RecordingProcessor(AudioProcessor):
    """Keeps every block it sees."""
    name = "recording"

    def __init__(self, sample_rate=16000, channels=1, **options):
        super().__init__(sample_rate, channels, **options)
        self.blocks = []
        self.closed = False

    def process(self, block):
        self.blocks.append(block.copy())
        return block

    def close(self):
        self.closed = True


def make_stream(data: bytes):
    """A stream with one track whose device returns ``data`` on every read."""
    pa_stream = Mock()

    def read(frames, exception_on_overflow=True):
        time.sleep(0.002)
        return data

    pa_stream.read.side_effect = read
    return MediaStream([MediaTrack(pa_stream, label="Test Mic")])


def wait_for(condition, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


@pytest.mark.unit
class TestAudioGraph:
    """Test cases for AudioGraph."""

    def test_initial_state(self):
        graph = AudioGraph()
        assert graph.state == "suspended"
        assert isinstance(graph.destination, DestinationNode)
        assert graph.processors == {}

    def test_load_builtin_module(self):
        graph = AudioGraph()
        names = graph.load_module("micprocess.audio.processors")
        assert set(names) == {"passthrough", "gain", "level-meter", "highpass"}

    def test_load_module_from_file(self, processor_module_file):
        graph = AudioGraph()
        assert graph.load_module(processor_module_file) == ["invert"]
        assert graph.create_processor("invert").name == "invert"

    def test_load_missing_file(self, temp_data_dir):
        graph = AudioGraph()
        with pytest.raises(ModuleLoadError, match="not found"):
            graph.load_module(f"{temp_data_dir}/missing.py")

    def test_load_module_with_syntax_error(self, temp_data_dir):
        path = f"{temp_data_dir}/broken.py"
        with open(path, "w") as f:
            f.write("def process(:\n")
        with pytest.raises(ModuleLoadError):
            AudioGraph().load_module(path)

    def test_load_module_without_processors(self):
        with pytest.raises(ModuleLoadError, match="does not define"):
            AudioGraph().load_module("micprocess.errors")

    def test_processor_registry_is_per_graph(self, processor_module_file):
        first = AudioGraph()
        second = AudioGraph()
        first.load_module(processor_module_file)

        with pytest.raises(ModuleLoadError):
            second.create_processor("invert")

    def test_create_processor_bad_options(self):
        graph = AudioGraph()
        graph.load_module("micprocess.audio.processors")
        with pytest.raises(ModuleLoadError, match="gain"):
            graph.create_processor("gain", gain=-1)

    def test_connect_returns_target(self):
        graph = AudioGraph()
        graph.processors["recording"] = RecordingProcessor
        source = graph.create_source(make_stream(b""))
        processor = graph.create_processor("recording")

        assert source.connect(processor) is processor
        assert processor.connect(graph.destination) is graph.destination

    def test_connect_across_graphs_rejected(self):
        graph = AudioGraph()
        other = AudioGraph()
        source = graph.create_source(make_stream(b""))
        with pytest.raises(InvalidStateError):
            source.connect(other.destination)

    def test_start_requires_connected_chain(self):
        graph = AudioGraph()
        graph.create_source(make_stream(b""))
        with pytest.raises(InvalidStateError):
            graph.start()

    def test_render_runs_processor_chain(self, sample_audio_chunk):
        graph = AudioGraph()
        graph.processors["recording"] = RecordingProcessor
        stream = make_stream(sample_audio_chunk)
        processor = graph.create_processor("recording")
        graph.create_source(stream).connect(processor).connect(graph.destination)

        graph.start()
        try:
            assert graph.state == "running"
            assert wait_for(lambda: graph.total_blocks >= 3)
        finally:
            stream.get_tracks()[0].stop()
            graph.close()

        block = processor.processor.blocks[0]
        assert block.dtype == np.float32
        assert block.shape == (1024, 1)
        assert 0.45 < np.max(np.abs(block)) < 0.55
        assert graph.destination.frames_written == 1024 * graph.total_blocks
        assert processor.processor.closed is True

    def test_render_stops_when_track_ends(self, sample_audio_chunk):
        graph = AudioGraph()
        graph.load_module("micprocess.audio.processors")
        stream = make_stream(sample_audio_chunk)
        graph.create_source(stream).connect(graph.create_processor("passthrough")).connect(graph.destination)
        graph.start()

        stream.get_tracks()[0].stop()

        graph.render_thread.join(timeout=2.0)
        assert not graph.render_thread.is_alive()
        graph.close()

    def test_render_error_is_recorded(self, sample_audio_chunk):
        class FailingProcessor(AudioProcessor):
            name = "failing"

            def process(self, block):
                raise RuntimeError("processor exploded")

        on_error = Mock()
        graph = AudioGraph(on_error=on_error)
        graph.processors["failing"] = FailingProcessor
        stream = make_stream(sample_audio_chunk)
        graph.create_source(stream).connect(graph.create_processor("failing")).connect(graph.destination)
        graph.start()

        graph.render_thread.join(timeout=2.0)
        assert isinstance(graph.render_error, RuntimeError)
        assert graph.state == "stopped"
        assert graph.get_stats().is_running is False
        on_error.assert_called_once_with(graph.render_error)
        stream.get_tracks()[0].stop()
        graph.close()

    def test_close_is_idempotent_and_final(self):
        graph = AudioGraph()
        graph.close()
        graph.close()
        assert graph.state == "closed"
        with pytest.raises(InvalidStateError):
            graph.load_module("micprocess.audio.processors")

    def test_pcm_conversion(self):
        samples = np.array([0, 16384, -16384, 32767], dtype=np.int16)
        block = pcm16_to_float(samples.tobytes(), channels=1)
        assert block.shape == (4, 1)
        assert block[1, 0] == pytest.approx(0.5)
        restored = np.frombuffer(float_to_pcm16(block), dtype=np.int16)
        assert np.all(np.abs(restored - samples) <= 1)

    def test_playback_destination(self, mock_pyaudio, sample_audio_chunk):
        graph = AudioGraph(playback=True)
        graph.load_module("micprocess.audio.processors")
        stream = make_stream(sample_audio_chunk)
        graph.create_source(stream).connect(graph.create_processor("passthrough")).connect(graph.destination)

        graph.start()
        try:
            assert wait_for(lambda: graph.total_blocks >= 1)
        finally:
            stream.get_tracks()[0].stop()
            graph.close()

        assert mock_pyaudio['instance'].open.call_args.kwargs["output"] is True
        assert mock_pyaudio['stream'].write.called
        mock_pyaudio['instance'].terminate.assert_called()

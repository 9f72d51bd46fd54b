"""Audio graph: source, processor and destination nodes plus the render loop."""

import os
import time
import inspect
import logging
import importlib
import importlib.util
from threading import Thread, Event
from typing import Callable, Dict, List, Optional, Type

import numpy as np
import pyaudio

from .processors import AudioProcessor
from .stream import MediaStream
from ..errors import DeviceUnavailableError, InvalidStateError, ModuleLoadError
from ..models.audio import CaptureStats

logger = logging.getLogger(__name__)


class AudioNode:
    """Base graph node. ``connect`` returns its argument so calls can be chained."""

    def __init__(self, graph: "AudioGraph"):
        self.graph = graph
        self.outputs: List["AudioNode"] = []

    def connect(self, node: "AudioNode") -> "AudioNode":
        if node.graph is not self.graph:
            raise InvalidStateError("Cannot connect nodes that belong to different graphs")
        if node not in self.outputs:
            self.outputs.append(node)
        logger.debug(f"Connected {type(self).__name__} -> {type(node).__name__}")
        return node

    def disconnect(self) -> None:
        self.outputs.clear()


class SourceNode(AudioNode):
    """Wraps a captured MediaStream as graph input."""

    def __init__(self, graph: "AudioGraph", stream: MediaStream):
        super().__init__(graph)
        self.stream = stream

    def live_track(self):
        for track in self.stream.get_audio_tracks():
            if track.ready_state == "live":
                return track
        return None


class ProcessorNode(AudioNode):
    """Runs an AudioProcessor on every rendered block."""

    def __init__(self, graph: "AudioGraph", processor: AudioProcessor):
        super().__init__(graph)
        self.processor = processor

    @property
    def name(self) -> str:
        return self.processor.name


class DestinationNode(AudioNode):
    """Final node of the graph."""

    def __init__(self, graph: "AudioGraph"):
        super().__init__(graph)
        self.frames_written = 0

    def connect(self, node: AudioNode) -> AudioNode:
        raise InvalidStateError("The destination node has no outputs")

    def open(self) -> None:
        pass

    def write(self, block: np.ndarray) -> None:
        self.frames_written += block.shape[0]

    def close(self) -> None:
        pass


class SpeakerDestination(DestinationNode):
    """Plays rendered audio on the default output device."""

    def __init__(self, graph: "AudioGraph"):
        super().__init__(graph)
        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.pa_stream = None

    def open(self) -> None:
        self.pyaudio_instance = pyaudio.PyAudio()
        self.pa_stream = self.pyaudio_instance.open(
            format=pyaudio.paInt16,
            channels=self.graph.channels,
            rate=self.graph.sample_rate,
            output=True,
            frames_per_buffer=self.graph.block_size,
        )
        logger.info("Speaker output opened")

    def write(self, block: np.ndarray) -> None:
        super().write(block)
        self.pa_stream.write(float_to_pcm16(block))

    def close(self) -> None:
        if self.pa_stream:
            self.pa_stream.stop_stream()
            self.pa_stream.close()
            self.pa_stream = None
        if self.pyaudio_instance:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None


def pcm16_to_float(data: bytes, channels: int) -> np.ndarray:
    """Convert interleaved int16 bytes to a float32 ``(frames, channels)`` array."""
    samples = np.frombuffer(data, dtype=np.int16).astype(np.float32) / 32768.0
    return samples.reshape(-1, channels)


def float_to_pcm16(block: np.ndarray) -> bytes:
    return (np.clip(block, -1.0, 1.0) * 32767).astype(np.int16).tobytes()


class AudioGraph:
    """Processing graph for one capture session.

    States are ``suspended`` (built, not rendering), ``running``,
    ``stopped`` (a processor failed, see ``render_error``) and ``closed``.
    Rendering happens on a single background thread which pulls blocks
    from the source track, runs them through the processor chain and hands
    them to the destination.
    """

    def __init__(self, sample_rate: int = 16000, channels: int = 1,
                 block_size: int = 1024, playback: bool = False,
                 on_error: Optional[Callable[[Exception], None]] = None):
        """Initialize graph.

        Args:
            sample_rate: Sample rate of the captured audio
            channels: Channel count of the captured audio
            block_size: Frames pulled from the source per render quantum
            playback: Send rendered audio to the speakers instead of discarding it
            on_error: Called on the render thread if a processor raises
        """
        self.sample_rate = sample_rate
        self.channels = channels
        self.block_size = block_size
        self.state = "suspended"
        self.on_error = on_error
        self.destination: DestinationNode = SpeakerDestination(self) if playback else DestinationNode(self)
        self.processors: Dict[str, Type[AudioProcessor]] = {}
        self.sources: List[SourceNode] = []
        self.processor_nodes: List[ProcessorNode] = []

        self.render_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.render_error: Optional[BaseException] = None
        self.start_time: Optional[float] = None
        self.total_blocks = 0

    def _check_open(self) -> None:
        if self.state == "closed":
            raise InvalidStateError("Audio graph is closed")

    def load_module(self, reference: str) -> List[str]:
        """Load a processor module and register its processors in this graph.

        Args:
            reference: Dotted module name or path to a ``.py`` file

        Returns:
            Names of the processors registered by the module

        Raises:
            ModuleLoadError: If the module cannot be loaded or defines no processors
        """
        self._check_open()
        logger.info(f"Loading processor module: {reference}")
        try:
            if reference.endswith(".py") or os.sep in reference:
                if not os.path.isfile(reference):
                    raise ModuleLoadError(f"Processor module not found: {reference}")
                module_name = os.path.splitext(os.path.basename(reference))[0]
                spec = importlib.util.spec_from_file_location(module_name, reference)
                module = importlib.util.module_from_spec(spec)
                spec.loader.exec_module(module)
            else:
                module = importlib.import_module(reference)
        except ModuleLoadError:
            raise
        except Exception as e:
            raise ModuleLoadError(f"Failed to load processor module {reference}: {e}") from e

        registered = []
        for _, obj in inspect.getmembers(module, inspect.isclass):
            if issubclass(obj, AudioProcessor) and obj.name:
                self.processors[obj.name] = obj
                registered.append(obj.name)

        if not registered:
            raise ModuleLoadError(f"Module {reference} does not define any audio processors")

        logger.info(f"Registered processors from {reference}: {', '.join(sorted(registered))}")
        return registered

    def create_source(self, stream: MediaStream) -> SourceNode:
        self._check_open()
        node = SourceNode(self, stream)
        self.sources.append(node)
        return node

    def create_processor(self, name: str, **options) -> ProcessorNode:
        """Instantiate a registered processor as a graph node.

        Raises:
            ModuleLoadError: If no loaded module registered ``name`` or the
                options are rejected by the processor
        """
        self._check_open()
        processor_class = self.processors.get(name)
        if processor_class is None:
            raise ModuleLoadError(f"Processor '{name}' is not registered; load its module first")
        try:
            processor = processor_class(sample_rate=self.sample_rate, channels=self.channels, **options)
        except (TypeError, ValueError) as e:
            raise ModuleLoadError(f"Could not create processor '{name}': {e}") from e

        node = ProcessorNode(self, processor)
        self.processor_nodes.append(node)
        return node

    def _resolve_chain(self) -> List[ProcessorNode]:
        """Walk from the source to the destination, returning processors in order."""
        if len(self.sources) != 1:
            raise InvalidStateError(f"Graph needs exactly one source, has {len(self.sources)}")

        chain = []
        node: AudioNode = self.sources[0]
        while node is not self.destination:
            if len(node.outputs) != 1:
                raise InvalidStateError(
                    f"{type(node).__name__} must have exactly one output, has {len(node.outputs)}")
            node = node.outputs[0]
            if isinstance(node, ProcessorNode):
                if node in chain:
                    raise InvalidStateError("Processor chain contains a cycle")
                chain.append(node)
        return chain

    def start(self) -> None:
        """Start rendering. The source must be connected through to the destination."""
        self._check_open()
        if self.state == "running":
            logger.warning("Audio graph already running")
            return

        chain = self._resolve_chain()
        try:
            self.destination.open()
        except OSError as e:
            self.destination.close()
            raise DeviceUnavailableError(f"Could not open audio output: {e}") from e
        self.stop_event.clear()
        self.start_time = time.time()
        self.total_blocks = 0

        self.render_thread = Thread(target=self._render_continuously, args=(self.sources[0], chain), daemon=True)
        self.render_thread.name = "AudioGraphRenderThread"
        self.state = "running"
        self.render_thread.start()
        logger.info(f"Audio graph running: source -> "
                    f"{' -> '.join(n.name for n in chain) or '(none)'} -> destination")

    def _render_block(self, source: SourceNode, chain: List[ProcessorNode]) -> bool:
        track = source.live_track()
        if track is None:
            return False
        try:
            data = track.read(self.block_size)
        except InvalidStateError:
            # Track stopped while we were waiting for it
            return False

        block = pcm16_to_float(data, self.channels)
        for node in chain:
            block = node.processor.process(block)
        self.destination.write(block)
        self.total_blocks += 1
        return True

    def _render_continuously(self, source: SourceNode, chain: List[ProcessorNode]) -> None:
        """Internal method: render loop in background thread."""
        try:
            while not self.stop_event.is_set():
                if not self._render_block(source, chain):
                    logger.info("Source has no live tracks, rendering finished")
                    break
        except Exception as e:
            self.render_error = e
            self.state = "stopped"
            logger.exception(f"Audio graph render failed: {e}")
            if self.on_error:
                self.on_error(e)

    def close(self) -> None:
        """Stop rendering and release the destination and processors."""
        if self.state == "closed":
            return

        self.stop_event.set()
        if self.render_thread and self.render_thread.is_alive():
            self.render_thread.join(timeout=2.0)
            if self.render_thread.is_alive():
                logger.warning("Render thread did not stop cleanly")

        self.destination.close()
        for node in self.processor_nodes:
            node.processor.close()
        self.state = "closed"
        logger.info(f"Audio graph closed. Total blocks: {self.total_blocks}")

    def get_stats(self) -> CaptureStats:
        duration = time.time() - self.start_time if self.start_time else 0.0
        return CaptureStats(
            is_running=(self.state == "running" and self.render_thread is not None
                        and self.render_thread.is_alive()),
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            block_size=self.block_size,
            total_blocks=self.total_blocks,
        )

"""Microphone controller: start and stop a capture session with its audio graph."""

import uuid
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .audio.graph import AudioGraph
from .audio.host import CaptureConstraints, PermissionPrompt, PyAudioHost, permission_policy
from .config import MicProcessConfig
from .errors import InvalidStateError, MicrophoneError, ProcessingError
from .models.audio import CaptureStats
from .models.session import CaptureSession, CaptureState, ControlResult

logger = logging.getLogger(__name__)

MICROPHONE_IN_USE = "Your microphone audio is being used."
MICROPHONE_RELEASED = "Your microphone audio is not used anymore."

DEFAULT_PROCESSOR_MODULE = "micprocess.audio.processors"

StatusCallback = Callable[[str, CaptureState, Optional[MicrophoneError]], None]


class MicrophoneController:
    """Owns at most one capture session and moves it between IDLE and CAPTURING.

    ``start`` and ``stop`` never let a ``MicrophoneError`` escape: failures
    come back as a ``ControlResult`` carrying the error, and the status
    callback is told about them. The callback runs after the controller
    lock is released, so it may call ``start`` or ``stop`` itself.
    """

    def __init__(
        self,
        host: PyAudioHost,
        constraints: Optional[CaptureConstraints] = None,
        processor_module: str = DEFAULT_PROCESSOR_MODULE,
        processor_name: str = "passthrough",
        processor_options: Optional[Dict[str, Any]] = None,
        playback: bool = False,
        status_callback: Optional[StatusCallback] = None,
        graph_factory: Callable[..., AudioGraph] = AudioGraph,
    ):
        """Initialize controller.

        Args:
            host: Host environment granting microphone access
            constraints: Capture request sent to the host on start
            processor_module: Module reference loaded into each new graph
            processor_name: Processor inserted between source and output
            processor_options: Keyword options for the processor
            playback: Route processed audio to the speakers
            status_callback: Receives each status message with the resulting
                state and the error, if any
            graph_factory: Builds the audio graph for each session
        """
        self.host = host
        self.constraints = constraints or CaptureConstraints()
        self.processor_module = processor_module
        self.processor_name = processor_name
        self.processor_options = processor_options or {}
        self.playback = playback
        self.status_callback = status_callback or (lambda message, state, error=None: None)
        self.graph_factory = graph_factory

        self.state = CaptureState.IDLE
        self.session: Optional[CaptureSession] = None
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: MicProcessConfig,
                    permission_prompt: Optional[PermissionPrompt] = None,
                    status_callback: Optional[StatusCallback] = None) -> "MicrophoneController":
        """Build a controller from the audio, microphone, processor and output config sections."""
        constraints = CaptureConstraints(
            device_index=config.get('audio.device_index'),
            sample_rate=config.get('audio.sample_rate', 16000),
            channels=config.get('audio.channels', 1),
            block_size=config.get('audio.block_size', 1024),
        )
        policy = config.get('microphone.permission', 'prompt')
        host = PyAudioHost(permission_policy(policy, permission_prompt))
        return cls(
            host=host,
            constraints=constraints,
            processor_module=config.get('processor.module', DEFAULT_PROCESSOR_MODULE),
            processor_name=config.get('processor.name', 'passthrough'),
            processor_options=config.get('processor.options') or {},
            playback=config.get('output.playback', False),
            status_callback=status_callback,
        )

    @property
    def is_capturing(self) -> bool:
        return self.state is CaptureState.CAPTURING

    def start(self) -> ControlResult:
        """Request the microphone and connect source -> processor -> output.

        Blocks until the permission prompt is answered and the graph is
        rendering, or until a failure is known.
        """
        with self._lock:
            result = self._start()
        self._emit(result)
        return result

    def _start(self) -> ControlResult:
        if self.state is CaptureState.CAPTURING:
            error = InvalidStateError(
                f"Microphone already in use by session {self.session.session_id}; stop it first")
            return self._fail("start", error)

        stream = None
        graph = None
        try:
            stream = self.host.get_user_media(self.constraints)
            graph = self.graph_factory(
                sample_rate=self.constraints.sample_rate,
                channels=self.constraints.channels,
                block_size=self.constraints.block_size,
                playback=self.playback,
                on_error=self._on_render_error,
            )
            graph.load_module(self.processor_module)
            processor = graph.create_processor(self.processor_name, **self.processor_options)
            graph.create_source(stream).connect(processor).connect(graph.destination)
            graph.start()
        except MicrophoneError as e:
            self._release(stream, graph)
            return self._fail("start", e)
        except Exception:
            self._release(stream, graph)
            raise

        session_id = f"session_{datetime.now():%Y%m%d_%H%M%S}_{uuid.uuid4().hex[:6]}"
        self.session = CaptureSession(session_id=session_id, stream=stream, graph=graph, processor=processor)
        self.state = CaptureState.CAPTURING
        logger.info(f"Capture session started: {session_id}")
        return ControlResult(success=True, state=self.state, message=MICROPHONE_IN_USE, session_id=session_id)

    def stop(self) -> ControlResult:
        """Stop every track of the current session and close its graph."""
        with self._lock:
            result = self._stop()
        self._emit(result)
        return result

    def _stop(self) -> ControlResult:
        if self.state is CaptureState.IDLE:
            return self._fail("stop", InvalidStateError("No active capture session to stop"))

        session = self.session
        self._release(session.stream, session.graph)
        self.session = None
        self.state = CaptureState.IDLE
        logger.info(f"Capture session stopped: {session.session_id}")
        return ControlResult(success=True, state=self.state, message=MICROPHONE_RELEASED,
                             session_id=session.session_id)

    def shutdown(self) -> None:
        """Stop the active session, if any."""
        if self.is_capturing:
            self.stop()

    def get_stats(self) -> Optional[CaptureStats]:
        if self.session:
            return self.session.graph.get_stats()
        return None

    def active_tracks(self) -> List:
        if not self.session:
            return []
        return [t for t in self.session.stream.get_tracks() if t.ready_state == "live"]

    def _release(self, stream, graph) -> None:
        if stream is not None:
            for track in stream.get_tracks():
                track.stop()
        if graph is not None:
            graph.close()

    def _fail(self, operation: str, error: MicrophoneError) -> ControlResult:
        message = f"Could not {operation} microphone: {error}"
        logger.error(message)
        return ControlResult(success=False, state=self.state, message=message, error=error)

    def _emit(self, result: ControlResult) -> None:
        self.status_callback(result.message, result.state, result.error)

    def _on_render_error(self, exc: Exception) -> None:
        """Called on the render thread when a processor fails."""
        error = ProcessingError(f"Audio processing failed: {exc}")
        logger.error(f"{error}; microphone is still held until stopped")
        self.status_callback(str(error), CaptureState.CAPTURING, error)

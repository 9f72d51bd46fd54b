"""Error types raised by the microphone capture pipeline."""


class MicrophoneError(Exception):
    """Base class for capture, graph and controller failures."""


class PermissionDeniedError(MicrophoneError):
    """Raised when the user refuses microphone access."""


class DeviceUnavailableError(MicrophoneError):
    """Raised when no usable input device is present or it fails to open."""


class ModuleLoadError(MicrophoneError):
    """Raised when a processor module cannot be imported or registers nothing."""


class InvalidStateError(MicrophoneError):
    """Raised when an operation is not allowed in the current state."""


class ProcessingError(MicrophoneError):
    """Raised when a processor fails while the graph is rendering."""

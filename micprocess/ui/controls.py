"""Start/stop controls bound to a MicrophoneController."""

import logging
from typing import Callable, List, Optional

from ..controller import MicrophoneController
from ..models.session import ControlResult

logger = logging.getLogger(__name__)


class Control:
    """A clickable control with an enabled flag, like a UI button."""

    def __init__(self, name: str, label: str, enabled: bool = True):
        self.name = name
        self.label = label
        self.enabled = enabled
        self._handlers: List[Callable[[], None]] = []

    def on_click(self, handler: Callable[[], None]) -> None:
        self._handlers.append(handler)

    def click(self) -> bool:
        """Run the click handlers. Returns False if the control is disabled."""
        if not self.enabled:
            logger.info(f"Ignoring click on disabled control: {self.name}")
            return False
        for handler in self._handlers:
            handler()
        return True


class MicrophoneControls:
    """Wires a start and a stop control to a controller.

    The stop control starts disabled and is enabled only while a capture
    session is active.
    """

    def __init__(self, controller: MicrophoneController):
        self.controller = controller
        self.start_control = Control("start", "Start microphone")
        self.stop_control = Control("stop", "Stop microphone", enabled=False)
        self.last_result: Optional[ControlResult] = None

        self.start_control.on_click(self._on_start)
        self.stop_control.on_click(self._on_stop)

    def _on_start(self) -> None:
        self.last_result = self.controller.start()
        self._sync()

    def _on_stop(self) -> None:
        self.last_result = self.controller.stop()
        self._sync()

    def _sync(self) -> None:
        self.stop_control.enabled = self.controller.is_capturing

    def handle_key(self, key: str) -> bool:
        """Dispatch a key press. Returns False when the user asked to quit.

        1 clicks start, 2 clicks stop, q or Ctrl-C quits.
        """
        if key == "1":
            self.start_control.click()
        elif key == "2":
            self.stop_control.click()
        elif key in ("q", "\x03"):
            return False
        else:
            logger.debug(f"Unbound key: {key!r}")
        return True

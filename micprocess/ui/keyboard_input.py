"""Terminal key input that drives the microphone controls."""

import sys
import threading
import time
from typing import Optional, Callable
import logging

logger = logging.getLogger(__name__)

KeyCallback = Callable[[str], bool]


class _InputLoop:
    """Runs ``_read_key`` on a daemon thread and feeds keys to the callback."""

    def __init__(self, callback: KeyCallback):
        """Initialize input loop.
        
        Args:
            callback: Function that takes a key and returns True to continue, False to quit
        """
        self.callback = callback
        self.running = False
        self.finished = threading.Event()
        self.thread: Optional[threading.Thread] = None
    
    def start(self) -> None:
        if self.running:
            return
        
        self.running = True
        self.finished.clear()
        self.thread = threading.Thread(target=self._input_loop, daemon=True)
        self.thread.name = type(self).__name__
        self.thread.start()
        logger.info(f"{type(self).__name__} started")
    
    def stop(self) -> None:
        self.running = False
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=1.0)
        logger.info(f"{type(self).__name__} stopped")
    
    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the user quits or input ends."""
        return self.finished.wait(timeout)
    
    def _read_key(self) -> Optional[str]:
        raise NotImplementedError
    
    def _input_loop(self) -> None:
        try:
            while self.running:
                try:
                    key = self._read_key()
                except EOFError:
                    logger.info("Input closed")
                    break
                if key:
                    logger.debug(f"Key detected: {key!r}")
                    if not self.callback(key):
                        logger.info("Quit requested, ending input loop")
                        break
                time.sleep(0.05)
        except Exception as e:
            logger.error(f"Input loop error: {e}")
        finally:
            self.running = False
            self.finished.set()


class KeyboardInputHandler(_InputLoop):
    """Single-keypress input on Windows (msvcrt) and Unix (raw tty)."""
    
    def _read_key(self) -> Optional[str]:
        if sys.platform == "win32":
            import msvcrt
            if msvcrt.kbhit():
                return msvcrt.getch().decode('utf-8', errors='ignore').lower()
            return None
        
        import select
        import termios
        import tty
        
        if not select.select([sys.stdin], [], [], 0.1)[0]:
            return None
        old_settings = termios.tcgetattr(sys.stdin)
        try:
            tty.setraw(sys.stdin.fileno())
            key = sys.stdin.read(1)
        finally:
            termios.tcsetattr(sys.stdin, termios.TCSADRAIN, old_settings)
        if not key:
            raise EOFError
        return key.lower()


class LineInputHandler(_InputLoop):
    """Line-based fallback for terminals without raw key support."""
    
    def _read_key(self) -> Optional[str]:
        user_input = input("[1]=start [2]=stop [q]=quit > ").strip().lower()
        return user_input[:1] or None


def create_input_handler(callback: KeyCallback) -> _InputLoop:
    """Create the best available input handler for the current terminal.
    
    Args:
        callback: Function that takes a key and returns True to continue, False to quit
        
    Returns:
        An input handler instance
    """
    if sys.stdin.isatty():
        return KeyboardInputHandler(callback)
    logger.info("stdin is not a terminal, using line input")
    return LineInputHandler(callback)

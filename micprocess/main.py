"""Main application entry point for micprocess."""

import sys
import time
import argparse
import logging
from pathlib import Path

from pubsub import pub
from rich.console import Console
from rich.table import Table

from .audio.host import PyAudioHost, permission_policy
from .config import MicProcessConfig
from .controller import MicrophoneController
from .models.events import AudioEvent, StatusEvent
from .models.session import CaptureState
from .status import StatusPublisher
from .ui.controls import MicrophoneControls
from .ui.keyboard_input import create_input_handler

logger = logging.getLogger(__name__)

STATUS_TOPIC = "microphone.status"
LEVEL_TOPIC = "audio.level"


class App:

    def __init__(self, config_path: str, log_level: str = None):
        # Load configuration
        self.config = MicProcessConfig(config_path)
        # Set up logging (command line overrides config)
        level = log_level or self.config.get('logging.level', 'INFO')
        setup_logging(self.config, level)
        self.console = Console()
        self.controller = None
        self.controls = None
        self.subscriptions = []

    def init(self, processor_name: str = None):
        logger.info("Initializing controller...")
        if processor_name:
            self.config.set('processor.name', processor_name)

        self.status_publisher = StatusPublisher(STATUS_TOPIC)
        for listener, topic in ((self.on_status, STATUS_TOPIC), (self.on_level, LEVEL_TOPIC)):
            pub.subscribe(listener, topic)
            self.subscriptions.append((listener, topic))

        self.controller = MicrophoneController.from_config(
            self.config, status_callback=self.status_publisher.get_callback())
        self.controls = MicrophoneControls(self.controller)

        logger.info(f"Audio settings: {self.controller.constraints.sample_rate}Hz, "
                    f"{self.controller.constraints.block_size} frames/block, "
                    f"{self.controller.constraints.channels} channels")
        logger.info(f"Processor: {self.controller.processor_name} from {self.controller.processor_module}")

    def on_status(self, event: StatusEvent):
        if event.error is not None:
            style = "red"
        elif event.state is CaptureState.CAPTURING:
            style = "green"
        else:
            style = "yellow"
        self.console.print(f"[{event.timestamp:%H:%M:%S}] {event.message}", style=style)

    def on_level(self, event: AudioEvent):
        logger.debug(f"Peak level {event.peak_level:.3f} (block {event.sequence_number})")

    def run_auto(self, duration: int) -> bool:
        """Start, capture for ``duration`` seconds, stop. Returns True on success."""
        try:
            self.controls.start_control.click()
            if not self.controller.is_capturing:
                return False
            time.sleep(duration)
            stats = self.controller.get_stats()
            self.controls.stop_control.click()
            if stats:
                self.console.print(f"Rendered {stats.total_blocks} blocks in {stats.duration_seconds:.1f}s")
            return True
        finally:
            self.cleanup()

    def run_interactive(self):
        self.console.print("Press [bold]1[/bold] to start the microphone, "
                           "[bold]2[/bold] to stop it, [bold]q[/bold] to quit.")
        handler = create_input_handler(self.controls.handle_key)
        handler.start()
        try:
            handler.wait()
        finally:
            handler.stop()
            self.cleanup()

    def cleanup(self):
        if self.controller:
            self.controller.shutdown()
        # Only what init() actually subscribed; topics may not exist yet
        for listener, topic in self.subscriptions:
            pub.unsubscribe(listener, topic)
        self.subscriptions.clear()


def setup_logging(config, level: str = "INFO") -> None:

    """Set up logging configuration from YAML config."""
    # Get log file path from config
    log_file_path = config.get('logging.file_path', 'data/logs/micprocess.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    # Console handler - warnings and above only, status goes through rich
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("="*50)
    logger.info("micprocess starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("="*50)


def print_devices(console: Console) -> None:
    host = PyAudioHost(permission_policy("granted"))
    table = Table(title="Input devices")
    table.add_column("Index", justify="right")
    table.add_column("Name")
    table.add_column("Channels", justify="right")
    table.add_column("Default rate", justify="right")
    for device in host.list_input_devices():
        rate = device["default_sample_rate"]
        table.add_row(str(device["index"]), device["name"], str(device["channels"]),
                      f"{rate:.0f}" if rate else "-")
    console.print(table)


def main() -> None:
    """Main entry point for micprocess."""
    parser = argparse.ArgumentParser(
        description="micprocess - microphone capture through an audio processing graph",
        epilog="Keys: 1=Start microphone, 2=Stop microphone, q=Quit"
    )

    parser.add_argument(
        "--config",
        type=str,
        default="micprocess.yaml",
        help="Path to configuration YAML file (default: micprocess.yaml)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from config)"
    )

    parser.add_argument(
        "--auto",
        action="store_true",
        help="Start the microphone, capture for --duration seconds, then stop and exit"
    )

    parser.add_argument(
        "--duration",
        type=int,
        default=10,
        help="Duration in seconds for auto mode (default: 10)"
    )

    parser.add_argument(
        "--processor",
        type=str,
        help="Processor name to insert between microphone and output (overrides config)"
    )

    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List input devices and exit"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="micprocess v0.1.0"
    )

    args = parser.parse_args()
    console = Console()

    if args.list_devices:
        print_devices(console)
        return

    try:
        app = App(args.config, args.log_level)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"Configuration error: {e}", style="bold red")
        sys.exit(2)

    try:
        app.init(args.processor)
        if args.auto:
            if not app.run_auto(args.duration):
                sys.exit(1)
        else:
            app.run_interactive()
    except KeyboardInterrupt:
        app.cleanup()
        console.print("\nGoodbye!")
    except Exception as e:
        console.print(f"Error: {e}", style="bold red")
        logger.exception(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

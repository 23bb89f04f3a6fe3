"""
Main voicecue application.
Wires the tracking coordinator to the web API and runs it until interrupted.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path

from . import debug_log
from .config import (
    Config,
    TrackingSettings,
    get_config_path,
    get_tracking_mode,
    get_tracking_settings,
    load_config,
    save_config,
)
from .coordinator import TrackingCoordinator
from .matching_config import TrackingMode
from .server import WebServer

logger = logging.getLogger(__name__)


class VoicecueApp:
    """
    Main voicecue application that owns the coordinator and the web server.
    """

    def __init__(
        self,
        mode: TrackingMode = TrackingMode.MIXED,
        host: str = "127.0.0.1",
        port: int = 8000,
        tracking_settings: TrackingSettings | None = None,
        reload_debounce_ms: int = 500
    ) -> None:
        settings: TrackingSettings | None = tracking_settings
        self.coordinator: TrackingCoordinator = TrackingCoordinator(
            mode=mode,
            pause_after_misses=settings["pause_after_misses"] if settings else 3,
            max_log_entries=settings["max_log_entries"] if settings else 20
        )
        self.server: WebServer = WebServer(
            self.coordinator,
            host=host,
            port=port,
            reload_debounce_ms=reload_debounce_ms
        )
        self.host: str = host
        self.port: int = port
        self.running: bool = False
        self._stop_event: asyncio.Event | None = None

    def load_script_file(self, path: Path) -> None:
        """Load the initial script from a file."""
        text: str = path.read_text(encoding="utf-8")
        self.server.script_text = text
        self.coordinator.load_script(text)
        logger.info("Loaded %s (%d words)", path, self.coordinator.word_count)

    async def start(self) -> None:
        """Start the web server and wait until stopped."""
        self._stop_event = asyncio.Event()
        await self.server.start()
        self.running = True

        print("\n✓ Voicecue ready!")
        print(f"  API at http://{self.host}:{self.port}/status")
        print("  Press Ctrl+C to stop\n")

        await self._stop_event.wait()

    def request_stop(self) -> None:
        """Ask start() to return."""
        self.running = False
        if self._stop_event is not None:
            self._stop_event.set()

    async def stop(self) -> None:
        """Stop the voicecue application."""
        self.running = False
        self.coordinator.stop()
        await self.server.stop()
        print("Voicecue stopped.")


def main() -> None:
    """Main entry point."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Voicecue - speech-following teleprompter tracking service"
    )

    parser.add_argument(
        "script",
        nargs="?",
        type=Path,
        default=None,
        help="Markdown script to load on startup"
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Config file (default: ./{get_config_path().name})"
    )

    parser.add_argument(
        "--mode",
        default=None,
        choices=[m.value for m in TrackingMode],
        help="Tracking mode (default: from config or 'mixed')"
    )

    parser.add_argument(
        "--host",
        default=None,
        help="Server host (default: from config or 127.0.0.1)"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Server port (default: from config or 8000)"
    )

    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level (default: from config or WARNING)"
    )

    parser.add_argument(
        "--debug-log",
        action="store_true",
        help="Write match decisions to ./logs/matches.log"
    )

    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Save current options to the config file and exit"
    )

    args: argparse.Namespace = parser.parse_args()

    config: Config = load_config(args.config)
    if args.mode:
        config["tracking"]["mode"] = args.mode
    if args.host:
        config["host"] = args.host
    if args.port is not None:
        config["port"] = args.port
    if args.log_level:
        config["log_level"] = args.log_level

    # Configure logging - minimal console output by default
    logging.basicConfig(
        level=getattr(logging, str(config["log_level"]).upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    if args.save_config:
        config_path: Path = args.config or get_config_path()
        if save_config(config, config_path):
            print(f"Configuration saved to {config_path}")
        return

    # Enable debug logging if requested
    if args.debug_log:
        debug_log.enable()
        print("Debug logging enabled (logs will be saved to ./logs/)")

    app: VoicecueApp = VoicecueApp(
        mode=get_tracking_mode(config),
        host=config["host"],
        port=config["port"],
        tracking_settings=get_tracking_settings(config),
        reload_debounce_ms=config["script_reload_debounce_ms"]
    )

    if args.script is not None:
        try:
            app.load_script_file(args.script)
        except OSError as e:
            print(f"Error loading script: {e}", file=sys.stderr)
            sys.exit(1)

    # Handle shutdown gracefully
    loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown(sig: int, frame: object) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM) gracefully."""
        print("\nReceived shutdown signal...")
        loop.call_soon_threadsafe(app.request_stop)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        app.running = False
    except OSError as e:
        logger.error("Could not start server: %s", e)
    finally:
        # Ensure clean shutdown
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
        # Cancel any remaining tasks
        pending: set[asyncio.Task[object]] = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        # Allow cancelled tasks to complete
        if pending:
            loop.run_until_complete(asyncio.gather(
                *pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()

"""
Main smartcue application.
Runs the web server that drives a teleprompter session for a rendering surface.
"""

import argparse
import asyncio
import contextlib
import logging
import signal

from . import debug_log
from .config import (
    DEFAULT_CONFIG,
    Config,
    get_config_path,
    get_display_settings,
    get_motion_settings,
    get_tracking_settings,
    load_config,
    save_config,
)
from .matcher import STRATEGIES
from .scheduler import AsyncioFrameScheduler
from .server import WebServer

logger = logging.getLogger(__name__)


class SmartcueApp:
    """
    Main application: owns the web server and waits for shutdown.
    """

    def __init__(self, config: Config) -> None:
        self.config: Config = config
        self.server: WebServer | None = None
        self.shutdown_event: asyncio.Event | None = None

    async def start(self) -> None:
        """Start the server and run until stop() is requested."""
        self.shutdown_event = asyncio.Event()
        self.server = WebServer(
            host=self.config["host"],
            port=self.config["port"],
            initial_settings=dict(get_display_settings(self.config)),
            tracking_settings=dict(get_tracking_settings(self.config)),
            motion_settings=dict(get_motion_settings(self.config)),
            scheduler=AsyncioFrameScheduler(
                asyncio.get_running_loop(),
                frame_rate=self.config.get("frame_rate", DEFAULT_CONFIG["frame_rate"])
            )
        )
        await self.server.start()

        print("\n✓ smartcue ready!")
        print(f"  Connect a prompter display to ws://{self.config['host']}:{self.config['port']}/ws")
        print("  Press Ctrl+C to stop\n")

        await self.shutdown_event.wait()

    def request_stop(self) -> None:
        """Ask start() to return."""
        if self.shutdown_event is not None:
            self.shutdown_event.set()

    async def stop(self) -> None:
        """Stop the server."""
        if self.server:
            await self.server.stop()
        print("smartcue stopped.")


def main() -> None:
    """Main entry point."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    # Load config first to use as defaults
    config: Config = load_config()

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="smartcue - teleprompter that scrolls on a timer or follows your voice"
    )
    parser.add_argument(
        "--host",
        default=config.get("host", "127.0.0.1"),
        help="Web server host (default: from config or 127.0.0.1)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=config.get("port", 8000),
        help="Web server port (default: from config or 8000)"
    )
    parser.add_argument(
        "--frame-rate",
        type=int,
        default=config.get("frame_rate", 60),
        help="Frame loop rate in Hz (default: from config or 60)"
    )
    parser.add_argument(
        "--strategy",
        choices=list(STRATEGIES),
        default=config["tracking"].get("strategy", "anchor"),
        help="Speech matching strategy (default: from config or 'anchor')"
    )
    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Save current CLI options to config file and exit"
    )
    parser.add_argument(
        "--debug-log",
        action="store_true",
        help="Enable matcher/motion debug logging to ./logs/"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show info-level log messages"
    )

    args: argparse.Namespace = parser.parse_args()

    config["host"] = args.host
    config["port"] = args.port
    config["frame_rate"] = args.frame_rate
    config["tracking"]["strategy"] = args.strategy

    if args.save_config:
        if save_config(config):
            print(f"Configuration saved to {get_config_path()}")
        return

    if args.verbose:
        logging.getLogger("smartcue").setLevel(logging.INFO)

    if args.debug_log:
        debug_log.enable()
        debug_log.clear_logs()
        print("Debug logging enabled (logs will be saved to ./logs/)")

    app: SmartcueApp = SmartcueApp(config)

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
        pass
    finally:
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
        pending: set[asyncio.Task[object]] = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        if pending:
            loop.run_until_complete(asyncio.gather(
                *pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()

"""P4Runtime controller main application."""

import asyncio
import logging
import signal
import sys
import threading
from pathlib import Path

from p4_controller.config import Settings, get_settings
from p4_controller.errors import ControllerError
from p4_controller.routes import JsonRouteSource
from p4_controller.session import SessionState, SwitchSession

logger = logging.getLogger(__name__)


def _read_optional(path: str) -> bytes:
    return Path(path).read_bytes() if path else b""


def _read_stdin(loop: asyncio.AbstractEventLoop, lines: asyncio.Queue) -> None:
    for line in sys.stdin:
        loop.call_soon_threadsafe(lines.put_nowait, line)
    loop.call_soon_threadsafe(lines.put_nowait, None)


class Application:
    """Main application orchestrator."""

    def __init__(self, settings: Settings):
        """
        Initialize application.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self.shutdown = asyncio.Event()
        self.sessions: list[SwitchSession] = []
        self.current_routes = settings.routes_file

    async def start(self) -> None:
        """Start one session per device."""
        logger.info(f"Starting {self.settings.device_count} devices")

        binary = _read_optional(self.settings.bin_path)
        p4info = _read_optional(self.settings.p4info_path)
        routes = JsonRouteSource(self.current_routes)

        for device_id in range(1, self.settings.device_count + 1):
            state = SessionState.for_device(device_id, self.settings, binary, p4info)
            session = SwitchSession(state, self.settings, routes, self.shutdown)
            await session.start()
            self.sessions.append(session)

    async def swap_config(self) -> None:
        """Toggle every session between the primary and alternate route files."""
        if self.current_routes == self.settings.routes_file:
            self.current_routes = self.settings.alt_routes_file
        else:
            self.current_routes = self.settings.routes_file

        logger.info(f"Changing switch config to {self.current_routes}")
        for session in self.sessions:
            try:
                await session.update_config(self.current_routes)
            except ControllerError as e:
                logger.error(f"Error updating switch config: {e}")

    async def run(self, lines: asyncio.Queue | None = None) -> None:
        """
        Swap route files on every input line until EOF or shutdown.

        Args:
            lines: Input lines terminated by None; defaults to stdin
        """
        if lines is None:
            lines = asyncio.Queue()
            threading.Thread(
                target=_read_stdin,
                args=(asyncio.get_running_loop(), lines),
                daemon=True,
            ).start()

        stop = asyncio.create_task(self.shutdown.wait())
        try:
            while True:
                logger.info("Press enter to change switch config")
                line = asyncio.create_task(lines.get())
                done, _ = await asyncio.wait(
                    {line, stop}, return_when=asyncio.FIRST_COMPLETED
                )
                if stop in done:
                    line.cancel()
                    break
                if line.result() is None:
                    break
                await self.swap_config()
        finally:
            stop.cancel()

    async def stop(self) -> None:
        """Stop all sessions and wait for their teardown."""
        logger.info("Shutting down controller...")
        self.shutdown.set()

        await asyncio.gather(*(session.wait_closed() for session in self.sessions))

        logger.info("Controller stopped")

    def handle_signal(self, sig: int) -> None:
        """
        Handle shutdown signals.

        Args:
            sig: Signal number
        """
        logger.info(f"Received signal {sig}, initiating shutdown...")
        self.shutdown.set()


async def main() -> None:
    """Main entry point."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app = Application(settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, app.handle_signal, sig)

    try:
        await app.start()
        await app.run()
    finally:
        await app.stop()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

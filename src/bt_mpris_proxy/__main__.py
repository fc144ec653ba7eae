"""Entry point for the Bluetooth MPRIS bridge."""

import asyncio
import logging
import signal
import sys

from dbus_next import BusType
from dbus_next.aio import MessageBus
from dbus_next.errors import DBusError

from . import __version__
from .bridge import BluezMprisBridge
from .config import AppConfig
from .mpris.manager import MprisManager
from .web.log_handler import StatusLogHandler
from .web.server import WebServer

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level_name: str) -> None:
    """Configure logging to stdout."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        stream=sys.stdout,
    )
    # Quiet noisy libraries
    logging.getLogger("dbus_next").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


async def main() -> None:
    """Start all services and run until signalled to stop."""
    config = AppConfig.load()
    setup_logging(config.log_level)

    logger = logging.getLogger(__name__)
    logger.info("Bluetooth MPRIS bridge v%s starting...", __version__)

    system_bus = await MessageBus(bus_type=BusType.SYSTEM).connect()
    logger.info("Connected to system D-Bus")

    bridge = BluezMprisBridge(
        system_bus,
        player_path=config.player_path,
        discovery_timeout=config.discovery_timeout_seconds,
    )

    status_log_handler = StatusLogHandler(bridge.event_bus)
    status_log_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(status_log_handler)

    web_server = None
    if config.web_enabled:
        web_server = WebServer(bridge, log_handler=status_log_handler, port=config.web_port)

    session_bus = None
    sessions = None

    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Received shutdown signal")
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _signal_handler)

    try:
        await bridge.start()

        try:
            session_bus = await MessageBus(bus_type=BusType.SESSION).connect()
            sessions = MprisManager(
                session_bus,
                bridge.set_controller,
                player_filter=config.player_filter,
                position_poll_interval=config.position_poll_interval,
            )
            await sessions.start()
        except (DBusError, OSError, ValueError) as e:
            # Keep the player registered even without media sessions
            logger.warning("MPRIS session watcher unavailable: %s", e)

        if web_server:
            await web_server.start()
        logger.info("All services running. Waiting for shutdown signal...")
        await shutdown_event.wait()
    except Exception as e:
        logger.error("Fatal error: %s", e, exc_info=True)
    finally:
        if web_server:
            await web_server.stop()
        if sessions:
            await sessions.stop()
        bridge.set_controller(None)
        await bridge.shutdown()
        if session_bus:
            session_bus.disconnect()
        system_bus.disconnect()
        logger.info("Goodbye.")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

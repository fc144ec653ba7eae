"""aiohttp web server for the status API."""

import logging
from typing import TYPE_CHECKING

from aiohttp import web

from .api import create_api_routes

if TYPE_CHECKING:
    from ..bridge import BluezMprisBridge
    from .log_handler import StatusLogHandler

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8099


def create_app(
    bridge: "BluezMprisBridge",
    log_handler: "StatusLogHandler | None" = None,
) -> web.Application:
    app = web.Application()
    app.router.add_routes(create_api_routes(bridge, log_handler))
    return app


class WebServer:
    """Serves the status API on ``port``."""

    def __init__(
        self,
        bridge: "BluezMprisBridge",
        log_handler: "StatusLogHandler | None" = None,
        port: int = DEFAULT_PORT,
    ):
        self._app = create_app(bridge, log_handler)
        self._port = port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self._port)
        await site.start()
        logger.info("Status server listening on port %d", self._port)

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Status server stopped")

"""Read-only status API for the Bluetooth MPRIS bridge."""

import asyncio
import logging
from typing import TYPE_CHECKING

from aiohttp import web
from aiohttp.web import WebSocketResponse

if TYPE_CHECKING:
    from ..bridge import BluezMprisBridge
    from .log_handler import StatusLogHandler

logger = logging.getLogger(__name__)


async def _ws_sender(ws: WebSocketResponse, queue: asyncio.Queue) -> None:
    """Forward queued bridge events to a WebSocket client."""
    try:
        while not ws.closed:
            await ws.send_json(await queue.get())
    except (ConnectionResetError, ConnectionError, asyncio.CancelledError):
        pass


def _parse_level(value: str) -> int:
    level = logging.getLevelName(value.upper())
    if not isinstance(level, int):
        raise web.HTTPBadRequest(text=f"Unknown log level: {value}")
    return level


def create_api_routes(
    bridge: "BluezMprisBridge",
    log_handler: "StatusLogHandler | None" = None,
) -> web.RouteTableDef:
    """Create all API route definitions."""
    routes = web.RouteTableDef()

    @routes.get("/api/health")
    async def health(request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    @routes.get("/api/state")
    async def state(request: web.Request) -> web.Response:
        """Registration state, bound controller and mirrored player state."""
        return web.json_response(bridge.get_status())

    @routes.get("/api/requests")
    async def requests(request: web.Request) -> web.Response:
        return web.json_response({"requests": list(bridge.recent_requests)})

    @routes.get("/api/logs")
    async def get_logs(request: web.Request) -> web.Response:
        """Buffered log entries; ``?level=`` and ``?limit=`` narrow them."""
        if log_handler is None:
            return web.json_response({"logs": []})
        min_level = _parse_level(request.query.get("level", "NOTSET"))
        try:
            limit = int(request.query["limit"]) if "limit" in request.query else None
        except ValueError:
            raise web.HTTPBadRequest(text="limit must be an integer")
        return web.json_response({"logs": log_handler.recent(min_level, limit)})

    @routes.get("/api/ws")
    async def websocket_handler(request: web.Request) -> WebSocketResponse:
        """Push player, registration, request and log events to the client."""
        ws = WebSocketResponse(heartbeat=30)
        await ws.prepare(request)

        queue = bridge.event_bus.subscribe()
        sender = asyncio.create_task(_ws_sender(ws, queue))
        try:
            await ws.send_json({"type": "state", **bridge.get_status()})
            async for _msg in ws:
                pass  # clients only listen
        finally:
            sender.cancel()
            bridge.event_bus.unsubscribe(queue)
        return ws

    return routes

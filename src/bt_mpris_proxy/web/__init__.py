"""Status HTTP/WebSocket API."""

from .events import EventBus
from .log_handler import StatusLogHandler
from .server import WebServer

__all__ = ["EventBus", "StatusLogHandler", "WebServer"]

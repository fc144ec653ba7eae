"""Fan-out of bridge events to status WebSocket clients."""

import asyncio
import itertools
import logging
from typing import Any

logger = logging.getLogger(__name__)

# Event types pushed to clients
PLAYER_STATE = "player_state"
PLAYER_REQUEST = "player_request"
REGISTRATION = "registration"
CONTROLLER_CHANGED = "controller_changed"
LOG_ENTRY = "log_entry"


class EventBus:
    """Delivers bridge events to every connected status client.

    Each client reads from its own bounded queue.  A client that stops
    reading loses events instead of holding up the bridge; the number of
    lost events is kept per client.
    """

    def __init__(self, maxsize: int = 64):
        self._maxsize = maxsize
        self._dropped: dict[asyncio.Queue, int] = {}
        self._seq = itertools.count(1)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._dropped[queue] = 0
        logger.debug("Status client connected (%d total)", len(self._dropped))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if self._dropped.pop(queue, None) is not None:
            logger.debug("Status client disconnected (%d remaining)", len(self._dropped))

    def emit(self, event: str, data: dict[str, Any]) -> None:
        """Queue ``{"type": event, "seq": n, **data}`` for every client."""
        if not self._dropped:
            return
        message = {"type": event, "seq": next(self._seq), **data}
        for queue in list(self._dropped):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                # Logging here would feed back into this bus
                self._dropped[queue] += 1

    def dropped(self, queue: asyncio.Queue) -> int:
        return self._dropped.get(queue, 0)

    @property
    def client_count(self) -> int:
        return len(self._dropped)

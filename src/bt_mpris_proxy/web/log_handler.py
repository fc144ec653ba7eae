"""Log capture for the status API."""

import collections
import logging

from .events import LOG_ENTRY, EventBus


class StatusLogHandler(logging.Handler):
    """Keeps recent log records and streams new ones to status clients."""

    MAX_RECENT_LOGS = 500

    def __init__(self, event_bus: EventBus, capacity: int = MAX_RECENT_LOGS) -> None:
        super().__init__()
        self._event_bus = event_bus
        self._recent: collections.deque[dict] = collections.deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "ts": record.created,
                "level": record.levelname,
                "levelno": record.levelno,
                "logger": record.name,
                "message": self.format(record),
            }
            self._recent.append(entry)
            self._event_bus.emit(LOG_ENTRY, entry)
        except Exception:
            self.handleError(record)

    def recent(self, min_level: int = logging.NOTSET, limit: int | None = None) -> list[dict]:
        """Buffered entries at or above ``min_level``, oldest first.

        ``limit`` keeps only the newest entries.
        """
        entries = [e for e in self._recent if e["levelno"] >= min_level]
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

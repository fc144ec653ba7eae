"""Upstream media controller contract.

A controller represents one local media session.  The bridge reads its
attributes, subscribes to per-field change notifications and forwards
playback requests to its imperative operations.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

from .state import FIELDS, LoopStatus, PlaybackStatus, empty_metadata

logger = logging.getLogger(__name__)

# Every notification a controller can emit.  Field events carry no
# arguments except "position" and "seeked", which carry the new position.
EVENTS = FIELDS + ("seeked",)


class MediaController(ABC):
    """Base class holding a controller's cached attributes and listeners.

    Subclasses fill the cache with ``_update()`` and implement the
    imperative operations.  ``_update()`` only notifies when a value
    actually changed.
    """

    def __init__(self):
        self._values: dict[str, Any] = {
            "identity": "",
            "metadata": empty_metadata(),
            "position": 0,
            "can_control": False,
            "can_go_next": False,
            "can_go_previous": False,
            "can_pause": False,
            "can_play": False,
            "can_seek": False,
            "minimum_rate": 1.0,
            "maximum_rate": 1.0,
            "rate": 1.0,
            "loop_status": LoopStatus.NONE,
            "shuffle": False,
            "volume": 1.0,
            "playback_status": PlaybackStatus.STOPPED,
        }
        self._listeners: dict[str, list[Callable]] = {event: [] for event in EVENTS}

    # -- Subscription registry --

    def subscribe(self, event: str, callback: Callable) -> None:
        """Register ``callback`` for ``event``."""
        self._listeners[event].append(callback)

    def unsubscribe(self, event: str, callback: Callable) -> None:
        """Remove ``callback`` from ``event``; unknown callbacks are ignored."""
        try:
            self._listeners[event].remove(callback)
        except ValueError:
            pass

    def subscriber_count(self, event: str | None = None) -> int:
        if event is not None:
            return len(self._listeners[event])
        return sum(len(cbs) for cbs in self._listeners.values())

    def _notify(self, event: str, *args) -> None:
        listeners = self._listeners[event]
        for cb in list(listeners):
            # Skip callbacks unsubscribed by an earlier one in this dispatch
            if cb in listeners:
                cb(*args)

    def _update(self, field: str, value: Any) -> None:
        if self._values.get(field) == value:
            return
        self._values[field] = value
        if field == "position":
            self._notify(field, value)
        else:
            self._notify(field)

    def _seeked(self, position: int) -> None:
        self._values["position"] = position
        self._notify("seeked", position)

    # -- Read accessors --

    def get(self, field: str) -> Any:
        return self._values[field]

    @property
    def identity(self) -> str:
        return self._values["identity"]

    @property
    def metadata(self) -> dict[str, Any]:
        return dict(self._values["metadata"])

    @property
    def position(self) -> int:
        return self._values["position"]

    @property
    def can_control(self) -> bool:
        return self._values["can_control"]

    @property
    def can_go_next(self) -> bool:
        return self._values["can_go_next"]

    @property
    def can_go_previous(self) -> bool:
        return self._values["can_go_previous"]

    @property
    def can_pause(self) -> bool:
        return self._values["can_pause"]

    @property
    def can_play(self) -> bool:
        return self._values["can_play"]

    @property
    def can_seek(self) -> bool:
        return self._values["can_seek"]

    @property
    def minimum_rate(self) -> float:
        return self._values["minimum_rate"]

    @property
    def maximum_rate(self) -> float:
        return self._values["maximum_rate"]

    @property
    def rate(self) -> float:
        return self._values["rate"]

    @property
    def loop_status(self) -> LoopStatus:
        return self._values["loop_status"]

    @property
    def shuffle(self) -> bool:
        return self._values["shuffle"]

    @property
    def volume(self) -> float:
        return self._values["volume"]

    @property
    def playback_status(self) -> PlaybackStatus:
        return self._values["playback_status"]

    # -- Imperative operations --

    @abstractmethod
    def next(self) -> None:
        ...

    @abstractmethod
    def previous(self) -> None:
        ...

    @abstractmethod
    def play(self) -> None:
        ...

    @abstractmethod
    def pause(self) -> None:
        ...

    @abstractmethod
    def play_pause(self) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...

    @abstractmethod
    def seek(self, offset: int) -> None:
        ...

    @abstractmethod
    def set_position(self, track_id: str, position: int) -> None:
        ...

    @abstractmethod
    def open_uri(self, uri: str) -> None:
        ...

    @abstractmethod
    def set_loop_status(self, loop_status: LoopStatus) -> None:
        ...

    @abstractmethod
    def set_rate(self, rate: float) -> None:
        ...

    @abstractmethod
    def set_shuffle(self, shuffle: bool) -> None:
        ...

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        ...

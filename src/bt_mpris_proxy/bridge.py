"""Bridge between the active media controller and the BlueZ proxy player.

Owns the mirrored state, the exported proxy player, adapter discovery and
player registration, and keeps the mirror in sync with whichever
controller is currently bound.
"""

import collections
import functools
import logging
import time
from enum import Enum
from typing import Any, Callable

from dbus_next.aio import MessageBus

from .bluez.constants import PLAYER_PATH
from .bluez.discovery import AdapterDiscovery
from .bluez.registration import PlayerRegistration
from .mpris.controller import EVENTS, MediaController
from .mpris.player import ProxyPlayer
from .mpris.state import FIELDS, MirrorState
from .web.events import (
    CONTROLLER_CHANGED,
    PLAYER_REQUEST,
    PLAYER_STATE,
    REGISTRATION,
    EventBus,
)

logger = logging.getLogger(__name__)

# Fields copied by a full resync.  CanControl is forced on instead.
SYNC_FIELDS = tuple(f for f in FIELDS if f != "can_control")

MAX_RECENT_REQUESTS = 50


class BluezMprisBridge:
    """Presents the active controller to BlueZ as one MPRIS player."""

    def __init__(
        self,
        bus: MessageBus,
        player_path: str = PLAYER_PATH,
        discovery_timeout: float | None = None,
        event_bus: EventBus | None = None,
    ):
        self._bus = bus
        self._player_path = player_path
        self.event_bus = event_bus or EventBus()
        self.state = MirrorState()
        self.player = ProxyPlayer(self.state, self._on_player_request)
        self.registration = PlayerRegistration(bus, self.state, player_path)
        self.discovery = AdapterDiscovery(bus, self.registration, discovery_timeout)
        self._controller: MediaController | None = None
        self._handlers: dict[str, Callable] = self._build_handlers()
        self._started = False
        self.recent_requests: collections.deque[dict] = collections.deque(
            maxlen=MAX_RECENT_REQUESTS,
        )

        self.state.on_change(self._on_state_changed)
        self.registration.on_change(self._on_registration_changed)
        self.sync_data()

    @property
    def controller(self) -> MediaController | None:
        return self._controller

    async def start(self) -> None:
        """Export the proxy player and start looking for an adapter."""
        self.player.export(self._bus, self._player_path)
        await self.discovery.start()
        self._started = True
        logger.info("Bluetooth MPRIS bridge started")

    async def shutdown(self) -> None:
        """Unregister from BlueZ and stop following adapter events."""
        logger.info("Shutting down Bluetooth MPRIS bridge...")
        if self._started:
            await self.discovery.stop()
        await self.registration.unregister()
        self.player.unexport()
        self._started = False
        logger.info("Bluetooth MPRIS bridge shut down")

    # -- Controller binding --

    def set_controller(self, controller: MediaController | None) -> None:
        """Bind ``controller`` (or nothing) as the source of player state.

        The previous controller is fully unsubscribed before the new one
        is subscribed, so no notification from it can land afterwards.
        """
        if controller is self._controller:
            return
        self._disconnect_controller()
        self._controller = controller
        self._connect_controller()
        self.event_bus.emit(CONTROLLER_CHANGED, {
            "controller": self._describe(controller) if controller is not None else None,
        })

    def _connect_controller(self) -> None:
        if self._controller is None:
            self.sync_data()
            return
        logger.info("Binding controller %s", self._describe(self._controller))
        for event, handler in self._handlers.items():
            self._controller.subscribe(event, handler)
        self.sync_data()

    def _disconnect_controller(self) -> None:
        if self._controller is None:
            return
        logger.info("Releasing controller %s", self._describe(self._controller))
        for event, handler in self._handlers.items():
            self._controller.unsubscribe(event, handler)
        self._controller = None
        self.sync_data()

    def sync_data(self) -> None:
        """Full resync of the mirror from the bound controller."""
        # The proxy player is always controllable
        self.state.set("can_control", True)
        self.state.reset_to_defaults()
        if self._controller is None:
            return
        for field in SYNC_FIELDS:
            self.state.set(field, self._controller.get(field))

    @staticmethod
    def _describe(controller: MediaController) -> str:
        return getattr(controller, "bus_name", None) or controller.identity or repr(controller)

    # -- Controller notifications --

    def _build_handlers(self) -> dict[str, Callable]:
        handlers: dict[str, Callable] = {}
        for event in EVENTS:
            if event == "position":
                handlers[event] = self._on_position_changed
            elif event == "seeked":
                handlers[event] = self._on_seeked
            else:
                handlers[event] = functools.partial(self._on_field_changed, event)
        return handlers

    def _on_field_changed(self, field: str) -> None:
        if self._controller is None:
            return
        self.state.set(field, self._controller.get(field))

    def _on_position_changed(self, position: int) -> None:
        self.state.set("position", position)

    def _on_seeked(self, position: int) -> None:
        self.state.set("position", position)
        self.player.emit_seeked(position)

    # -- Requests from the Bluetooth side --

    def _on_player_request(self, operation: str, *args: Any) -> None:
        """Forward a proxy player request to the bound controller.

        Without a bound controller the request is dropped.
        """
        controller = self._controller
        entry = {
            "ts": time.time(),
            "operation": operation,
            "args": [a.value if isinstance(a, Enum) else a for a in args],
            "controller": self._describe(controller) if controller is not None else None,
        }
        self.recent_requests.append(entry)
        self.event_bus.emit(PLAYER_REQUEST, entry)

        if controller is None:
            logger.debug("No active controller, dropping %s request", operation)
            return
        getattr(controller, operation)(*args)

    # -- Status --

    def _on_state_changed(self, field: str, value: Any) -> None:
        if field == "position":
            return
        self.event_bus.emit(PLAYER_STATE, {"field": field, "value": value})

    def _on_registration_changed(self, registered: bool, adapter_path: str | None) -> None:
        self.event_bus.emit(REGISTRATION, {
            "registered": registered,
            "adapter_path": adapter_path,
        })

    def get_status(self) -> dict:
        """Snapshot of the bridge for the status API."""
        controller = self._controller
        return {
            "registered": self.registration.registered,
            "adapter_path": self.registration.adapter_path,
            "service_available": self.discovery.service_available,
            "player_path": self._player_path,
            "controller": self._describe(controller) if controller is not None else None,
            "player": self.state.snapshot(),
        }

"""Controller backed by a remote MPRIS player on the session bus."""

import asyncio
import logging
from typing import Any

from dbus_next.aio import MessageBus
from dbus_next.errors import DBusError

from ..bluez.constants import PROPERTIES_INTERFACE
from .constants import (
    MPRIS_PATH,
    MPRIS_PLAYER_INTERFACE,
    MPRIS_ROOT_INTERFACE,
    PLAYER_PROPERTIES,
    ROOT_PROPERTIES,
)
from .controller import MediaController
from .state import LoopStatus, PlaybackStatus, unwrap_variant

logger = logging.getLogger(__name__)

_INTERFACE_PROPERTIES = {
    MPRIS_ROOT_INTERFACE: ROOT_PROPERTIES,
    MPRIS_PLAYER_INTERFACE: PLAYER_PROPERTIES,
}


def _convert(field: str, value: Any) -> Any:
    """Turn an unwrapped D-Bus property value into a controller value."""
    if field == "loop_status":
        try:
            return LoopStatus(value)
        except ValueError:
            return LoopStatus.NONE
    if field == "playback_status":
        try:
            return PlaybackStatus(value)
        except ValueError:
            return PlaybackStatus.STOPPED
    if field == "metadata":
        return dict(value or {})
    return value


class MprisClientController(MediaController):
    """Wraps org.mpris.MediaPlayer2(.Player) of one session-bus player.

    Property values are cached from GetAll and kept current through
    PropertiesChanged and Seeked.  MPRIS players do not signal Position
    while playing, so it is polled at ``position_poll_interval``.
    Playback requests are fire-and-forget: failures are logged.
    """

    def __init__(
        self,
        bus: MessageBus,
        bus_name: str,
        position_poll_interval: float = 1.0,
    ):
        super().__init__()
        self._bus = bus
        self._bus_name = bus_name
        self._poll_interval = position_poll_interval
        self._player_iface = None
        self._properties_iface = None
        self._poll_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def bus_name(self) -> str:
        return self._bus_name

    async def initialize(self) -> None:
        """Connect to the player's interfaces and load its properties."""
        introspection = await self._bus.introspect(self._bus_name, MPRIS_PATH)
        proxy = self._bus.get_proxy_object(self._bus_name, MPRIS_PATH, introspection)
        self._player_iface = proxy.get_interface(MPRIS_PLAYER_INTERFACE)
        self._properties_iface = proxy.get_interface(PROPERTIES_INTERFACE)

        self._properties_iface.on_properties_changed(self._on_properties_changed)
        self._player_iface.on_seeked(self._on_seeked)

        await self.refresh()
        if self._poll_interval and self._poll_interval > 0:
            self._poll_task = asyncio.create_task(self._position_poll_loop())
        logger.debug("MPRIS player %s initialized (%s)", self._bus_name, self.identity)

    async def refresh(self) -> None:
        """Reload all properties of both MPRIS interfaces."""
        for interface in (MPRIS_ROOT_INTERFACE, MPRIS_PLAYER_INTERFACE):
            try:
                props = await self._properties_iface.call_get_all(interface)
            except DBusError as e:
                logger.warning(
                    "GetAll(%s) on %s failed: %s", interface, self._bus_name, e
                )
                continue
            self._apply(interface, props)

    async def close(self) -> None:
        """Stop polling, cancel pending operations and drop signal subscriptions."""
        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
        self._poll_task = None

        for task in list(self._tasks):
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

        if self._properties_iface is not None:
            self._properties_iface.off_properties_changed(self._on_properties_changed)
        if self._player_iface is not None:
            self._player_iface.off_seeked(self._on_seeked)
        logger.debug("MPRIS player %s closed", self._bus_name)

    # -- Signal handlers --

    def _apply(self, interface: str, changed: dict) -> None:
        mapping = _INTERFACE_PROPERTIES.get(interface)
        if mapping is None:
            return
        for name, variant in changed.items():
            field = mapping.get(name)
            if field is None:
                continue
            self._update(field, _convert(field, unwrap_variant(variant)))

    def _on_properties_changed(
        self, interface_name: str, changed: dict, invalidated: list
    ) -> None:
        self._apply(interface_name, changed)
        if invalidated and interface_name in _INTERFACE_PROPERTIES:
            self._spawn("refresh", self.refresh())

    def _on_seeked(self, position: int) -> None:
        logger.debug("%s seeked to %d", self._bus_name, position)
        self._seeked(position)

    async def _position_poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            if self.playback_status != PlaybackStatus.PLAYING:
                continue
            try:
                position = await self._player_iface.get_position()
            except DBusError as e:
                logger.debug("Position poll on %s failed: %s", self._bus_name, e)
                continue
            self._update("position", position)

    # -- Imperative operations --

    def _spawn(self, what: str, coro) -> None:
        task = asyncio.create_task(self._run(what, coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, what: str, coro) -> None:
        try:
            await coro
        except DBusError as e:
            logger.warning("%s on %s failed: %s", what, self._bus_name, e)

    def next(self) -> None:
        self._spawn("Next", self._player_iface.call_next())

    def previous(self) -> None:
        self._spawn("Previous", self._player_iface.call_previous())

    def play(self) -> None:
        self._spawn("Play", self._player_iface.call_play())

    def pause(self) -> None:
        self._spawn("Pause", self._player_iface.call_pause())

    def play_pause(self) -> None:
        self._spawn("PlayPause", self._player_iface.call_play_pause())

    def stop(self) -> None:
        self._spawn("Stop", self._player_iface.call_stop())

    def seek(self, offset: int) -> None:
        self._spawn("Seek", self._player_iface.call_seek(offset))

    def set_position(self, track_id: str, position: int) -> None:
        self._spawn(
            "SetPosition", self._player_iface.call_set_position(track_id, position)
        )

    def open_uri(self, uri: str) -> None:
        self._spawn("OpenUri", self._player_iface.call_open_uri(uri))

    def set_loop_status(self, loop_status: LoopStatus) -> None:
        self._spawn(
            "Set LoopStatus",
            self._player_iface.set_loop_status(LoopStatus(loop_status).value),
        )

    def set_rate(self, rate: float) -> None:
        self._spawn("Set Rate", self._player_iface.set_rate(rate))

    def set_shuffle(self, shuffle: bool) -> None:
        self._spawn("Set Shuffle", self._player_iface.set_shuffle(shuffle))

    def set_volume(self, volume: float) -> None:
        self._spawn("Set Volume", self._player_iface.set_volume(volume))

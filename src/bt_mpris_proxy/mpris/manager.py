"""Session selection: decides which MPRIS player is the active controller.

Watches the session bus for ``org.mpris.MediaPlayer2.*`` names.  A player
that starts playing becomes the active controller; when the active player
goes away the most recently active remaining one takes over.
"""

import asyncio
import itertools
import logging
from typing import Callable

from dbus_next import Message, MessageType
from dbus_next.aio import MessageBus

from ..bluez.constants import DBUS_INTERFACE, DBUS_PATH, DBUS_SERVICE
from .client import MprisClientController
from .constants import MPRIS_BUS_PREFIX
from .state import PlaybackStatus

logger = logging.getLogger(__name__)

NAME_OWNER_MATCH = (
    "type='signal',sender='org.freedesktop.DBus',"
    "interface='org.freedesktop.DBus',member='NameOwnerChanged',"
    "arg0namespace='org.mpris.MediaPlayer2'"
)


class MprisManager:
    """Tracks session-bus MPRIS players and reports the current one."""

    def __init__(
        self,
        bus: MessageBus,
        on_current_changed: Callable[[MprisClientController | None], None],
        player_filter: str = "",
        position_poll_interval: float = 1.0,
    ):
        self._bus = bus
        self._on_current_changed = on_current_changed
        self._player_filter = player_filter
        self._poll_interval = position_poll_interval
        self._controllers: dict[str, MprisClientController] = {}
        self._status_handlers: dict[str, Callable[[], None]] = {}
        self._activity: dict[str, int] = {}
        self._counter = itertools.count(1)
        self._current: MprisClientController | None = None
        self._tasks: set[asyncio.Task] = set()
        # Controllers still initializing, by bus name
        self._pending: dict[str, MprisClientController] = {}

    @property
    def current(self) -> MprisClientController | None:
        return self._current

    @property
    def players(self) -> list[str]:
        return list(self._controllers)

    def is_candidate(self, name: str) -> bool:
        if not name.startswith(MPRIS_BUS_PREFIX):
            return False
        return not self._player_filter or self._player_filter in name

    async def start(self) -> None:
        """Watch for players and pick up the ones already running."""
        self._bus.add_message_handler(self._on_message)
        await self._bus.call(
            Message(
                destination=DBUS_SERVICE,
                path=DBUS_PATH,
                interface=DBUS_INTERFACE,
                member="AddMatch",
                signature="s",
                body=[NAME_OWNER_MATCH],
            )
        )

        reply = await self._bus.call(
            Message(
                destination=DBUS_SERVICE,
                path=DBUS_PATH,
                interface=DBUS_INTERFACE,
                member="ListNames",
            )
        )
        if reply.message_type == MessageType.ERROR:
            logger.warning("ListNames failed: %s", reply.error_name)
            return

        for name in reply.body[0]:
            if self.is_candidate(name):
                await self.add_player(name)
        logger.info("MPRIS session watcher started (%d player(s))", len(self._controllers))

    async def stop(self) -> None:
        """Drop every player; the current controller becomes None."""
        self._bus.remove_message_handler(self._on_message)
        for task in list(self._tasks):
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        self._pending.clear()
        for name in list(self._controllers):
            await self.remove_player(name)
        self._set_current(None)

    def _on_message(self, msg: Message) -> bool:
        if (
            msg.message_type != MessageType.SIGNAL
            or msg.interface != DBUS_INTERFACE
            or msg.member != "NameOwnerChanged"
            or not msg.body
            or len(msg.body) < 3
        ):
            return False

        name, old_owner, new_owner = msg.body[:3]
        if not self.is_candidate(name):
            return False

        if old_owner:
            self._spawn(self.remove_player(name))
        if new_owner:
            self._spawn(self.add_player(name))
        return False

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def add_player(self, name: str) -> None:
        if name in self._controllers or name in self._pending:
            return

        controller = MprisClientController(self._bus, name, self._poll_interval)
        self._pending[name] = controller
        try:
            await controller.initialize()
        except Exception as e:
            # Names under the MPRIS prefix need not implement MPRIS
            logger.warning("Cannot attach to MPRIS player %s: %s", name, e)
            if self._pending.get(name) is controller:
                del self._pending[name]
            await controller.close()
            return

        if self._pending.get(name) is not controller:
            logger.debug("MPRIS player %s vanished while attaching", name)
            await controller.close()
            return
        del self._pending[name]

        def _on_status() -> None:
            self._on_playback_status(name)

        controller.subscribe("playback_status", _on_status)
        self._status_handlers[name] = _on_status
        self._controllers[name] = controller
        self._activity[name] = next(self._counter)
        logger.info("MPRIS player appeared: %s (%s)", name, controller.identity)
        self._select()

    async def remove_player(self, name: str) -> None:
        self._pending.pop(name, None)
        controller = self._controllers.pop(name, None)
        if controller is None:
            return
        controller.unsubscribe("playback_status", self._status_handlers.pop(name))
        self._activity.pop(name, None)
        logger.info("MPRIS player vanished: %s", name)
        if controller is self._current:
            self._select(exclude_current=True)
        await controller.close()

    def _on_playback_status(self, name: str) -> None:
        controller = self._controllers.get(name)
        if controller is None:
            return
        if controller.playback_status == PlaybackStatus.PLAYING:
            self._activity[name] = next(self._counter)
        self._select()

    def _select(self, exclude_current: bool = False) -> None:
        current = None if exclude_current else self._current
        if current is not None and current.playback_status == PlaybackStatus.PLAYING:
            return

        ordered = sorted(
            self._controllers,
            key=lambda n: self._activity.get(n, 0),
            reverse=True,
        )
        playing = [
            self._controllers[n]
            for n in ordered
            if self._controllers[n].playback_status == PlaybackStatus.PLAYING
        ]
        if playing:
            choice = playing[0]
        elif current is not None:
            choice = current
        elif ordered:
            choice = self._controllers[ordered[0]]
        else:
            choice = None
        self._set_current(choice)

    def _set_current(self, controller: MprisClientController | None) -> None:
        if controller is self._current:
            return
        self._current = controller
        logger.info(
            "Active MPRIS player: %s",
            controller.bus_name if controller is not None else "none",
        )
        self._on_current_changed(controller)

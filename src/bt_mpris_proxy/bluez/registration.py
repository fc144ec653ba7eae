"""Registration of the proxy player with org.bluez.Media1.

RegisterPlayer and UnregisterPlayer are sent fire-and-forget
(NO_REPLY_EXPECTED): the only outcome we look at is whether the message
left the process.
"""

import logging
from typing import Callable

from dbus_next import Message, MessageFlag, Variant
from dbus_next.aio import MessageBus

from ..mpris.state import MirrorState, metadata_to_dbus
from .constants import (
    BLUEZ_SERVICE,
    MEDIA_INTERFACE,
    PLAYER_PATH,
    REGISTER_PLAYER_METHOD,
    UNREGISTER_PLAYER_METHOD,
)

logger = logging.getLogger(__name__)


class PlayerRegistration:
    """Owns the registered/unregistered state of the proxy player.

    ``registered`` implies ``adapter_path`` is the adapter the player was
    last registered with; unregistration always targets that path.
    """

    def __init__(
        self,
        bus: MessageBus,
        state: MirrorState,
        player_path: str = PLAYER_PATH,
    ):
        self._bus = bus
        self._state = state
        self._player_path = player_path
        self._registered = False
        self._adapter_path: str | None = None
        self._sending = False
        self._generation = 0
        self._listeners: list[Callable[[bool, str | None], None]] = []

    @property
    def registered(self) -> bool:
        return self._registered

    @property
    def adapter_path(self) -> str | None:
        return self._adapter_path

    @property
    def player_path(self) -> str:
        return self._player_path

    def on_change(self, callback: Callable[[bool, str | None], None]) -> None:
        """Register a callback for registration state changes."""
        self._listeners.append(callback)

    def _set(self, registered: bool, adapter_path: str | None) -> None:
        if (registered, adapter_path) == (self._registered, self._adapter_path):
            return
        self._registered = registered
        self._adapter_path = adapter_path
        for cb in self._listeners:
            cb(registered, adapter_path)

    def build_properties(self) -> dict[str, Variant]:
        """Property map sent with RegisterPlayer.

        CanSeek, the rates and Volume are not part of the set BlueZ
        accepts at registration time.
        """
        state = self._state
        return {
            "Identity": Variant("s", state.identity),
            "Metadata": Variant("a{sv}", metadata_to_dbus(state.metadata)),
            "Position": Variant("x", state.position),
            "CanControl": Variant("b", state.get("can_control")),
            "CanGoNext": Variant("b", state.get("can_go_next")),
            "CanGoPrevious": Variant("b", state.get("can_go_previous")),
            "CanPause": Variant("b", state.get("can_pause")),
            "CanPlay": Variant("b", state.get("can_play")),
            "LoopStatus": Variant("s", state.loop_status.value),
            "Shuffle": Variant("b", state.get("shuffle")),
            "PlaybackStatus": Variant("s", state.playback_status.value),
        }

    async def register(self, adapter_path: str) -> bool:
        """Register the player with the Media1 service on ``adapter_path``.

        No-op while registered or while a registration is being sent.
        Returns True if a RegisterPlayer message was sent.
        """
        if self._registered or self._sending:
            logger.debug(
                "Player already registered (adapter %s)", self._adapter_path
            )
            return False

        message = Message(
            destination=BLUEZ_SERVICE,
            path=adapter_path,
            interface=MEDIA_INTERFACE,
            member=REGISTER_PLAYER_METHOD,
            signature="oa{sv}",
            body=[self._player_path, self.build_properties()],
            flags=MessageFlag.NO_REPLY_EXPECTED,
        )

        generation = self._generation
        self._sending = True
        try:
            await self._bus.send(message)
        except Exception as e:
            logger.warning("Failed to register player with %s: %s", adapter_path, e)
            return False
        finally:
            self._sending = False

        if generation != self._generation:
            logger.info(
                "Adapter %s went away while registering, not marking registered",
                adapter_path,
            )
            return False

        self._set(True, adapter_path)
        logger.info(
            "Media player %s registered with %s", self._player_path, adapter_path
        )
        return True

    async def unregister(self) -> None:
        """Unregister from the adapter the player was registered with.

        The local state becomes unregistered whether or not the message
        could be sent.
        """
        if not self._registered:
            return

        adapter_path = self._adapter_path
        self._set(False, None)
        message = Message(
            destination=BLUEZ_SERVICE,
            path=adapter_path,
            interface=MEDIA_INTERFACE,
            member=UNREGISTER_PLAYER_METHOD,
            signature="o",
            body=[self._player_path],
            flags=MessageFlag.NO_REPLY_EXPECTED,
        )
        try:
            await self._bus.send(message)
        except Exception as e:
            logger.warning(
                "Failed to unregister player from %s: %s", adapter_path, e
            )
            return
        logger.info("Media player unregistered from %s", adapter_path)

    def mark_unregistered(self) -> None:
        """Forget the registration without talking to BlueZ.

        Used when the adapter or the whole service disappeared, so there
        is nothing left to unregister from.
        """
        self._generation += 1
        if self._registered:
            logger.info("Registration with %s dropped", self._adapter_path)
        self._set(False, None)

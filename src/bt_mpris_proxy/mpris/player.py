"""MPRIS MediaPlayer2 objects exported towards BlueZ.

BlueZ forwards AVRCP passthrough commands from a connected Bluetooth
device as D-Bus method calls on these interfaces, and reads their
properties to answer the remote's status queries.  Values come from the
bridge's ``MirrorState``; requests are handed to a callback which
forwards them to whatever controller is currently bound.
"""

import logging
from typing import Any, Callable

from dbus_next.aio import MessageBus
from dbus_next.constants import PropertyAccess
from dbus_next.errors import DBusError
from dbus_next.service import ServiceInterface, dbus_property, method, signal

from .constants import (
    INVALID_ARGUMENT_ERROR,
    MPRIS_PATH,
    MPRIS_PLAYER_INTERFACE,
    MPRIS_ROOT_INTERFACE,
    PLAYER_PROPERTIES,
    ROOT_PROPERTIES,
)
from .state import LoopStatus as LoopMode
from .state import MirrorState, metadata_to_dbus

logger = logging.getLogger(__name__)

_FIELD_TO_PLAYER_PROPERTY = {field: name for name, field in PLAYER_PROPERTIES.items()}
_FIELD_TO_ROOT_PROPERTY = {field: name for name, field in ROOT_PROPERTIES.items()}

RequestCallback = Callable[..., None]


class MPRISRootInterface(ServiceInterface):
    """D-Bus implementation of org.mpris.MediaPlayer2."""

    def __init__(self, state: MirrorState):
        super().__init__(MPRIS_ROOT_INTERFACE)
        self._state = state

    @method()
    def Raise(self) -> None:
        logger.debug("Ignoring Raise request")

    @method()
    def Quit(self) -> None:
        logger.debug("Ignoring Quit request")

    @dbus_property(access=PropertyAccess.READ)
    def CanQuit(self) -> "b":
        return False

    @dbus_property(access=PropertyAccess.READ)
    def CanRaise(self) -> "b":
        return False

    @dbus_property(access=PropertyAccess.READ)
    def HasTrackList(self) -> "b":
        return self._state.has_track_list

    @dbus_property(access=PropertyAccess.READ)
    def Identity(self) -> "s":
        return self._state.identity

    @dbus_property(access=PropertyAccess.READ)
    def SupportedUriSchemes(self) -> "as":
        return []

    @dbus_property(access=PropertyAccess.READ)
    def SupportedMimeTypes(self) -> "as":
        return []


class MPRISPlayerInterface(ServiceInterface):
    """D-Bus implementation of org.mpris.MediaPlayer2.Player.

    Methods and property writes are requests: they are forwarded through
    the request callback and never touch the mirrored state directly.
    The new value arrives later through the controller's notifications.
    """

    def __init__(self, state: MirrorState, request_callback: RequestCallback):
        super().__init__(MPRIS_PLAYER_INTERFACE)
        self._state = state
        self._request = request_callback

    def _forward(self, operation: str, *args: Any) -> None:
        logger.info("AVRCP request %s%s", operation, args or "")
        self._request(operation, *args)

    # -- Methods called by BlueZ on behalf of the remote device --

    @method()
    def Next(self) -> None:
        self._forward("next")

    @method()
    def Previous(self) -> None:
        self._forward("previous")

    @method()
    def Pause(self) -> None:
        self._forward("pause")

    @method()
    def PlayPause(self) -> None:
        self._forward("play_pause")

    @method()
    def Stop(self) -> None:
        self._forward("stop")

    @method()
    def Play(self) -> None:
        self._forward("play")

    @method()
    def Seek(self, offset: "x") -> None:
        self._forward("seek", offset)

    @method()
    def SetPosition(self, track_id: "o", position: "x") -> None:
        self._forward("set_position", track_id, position)

    @method()
    def OpenUri(self, uri: "s") -> None:
        self._forward("open_uri", uri)

    # -- Properties --

    @dbus_property(access=PropertyAccess.READ)
    def PlaybackStatus(self) -> "s":
        return self._state.playback_status.value

    @dbus_property()
    def LoopStatus(self) -> "s":
        return self._state.loop_status.value

    @LoopStatus.setter
    def LoopStatus(self, val: "s"):
        try:
            mode = LoopMode(val)
        except ValueError:
            raise DBusError(INVALID_ARGUMENT_ERROR, f"Invalid LoopStatus: {val}")
        self._forward("set_loop_status", mode)

    @dbus_property()
    def Rate(self) -> "d":
        return self._state.get("rate")

    @Rate.setter
    def Rate(self, val: "d"):
        self._forward("set_rate", val)

    @dbus_property()
    def Shuffle(self) -> "b":
        return self._state.get("shuffle")

    @Shuffle.setter
    def Shuffle(self, val: "b"):
        self._forward("set_shuffle", val)

    @dbus_property(access=PropertyAccess.READ)
    def Metadata(self) -> "a{sv}":
        return metadata_to_dbus(self._state.metadata)

    @dbus_property()
    def Volume(self) -> "d":
        return self._state.get("volume")

    @Volume.setter
    def Volume(self, val: "d"):
        self._forward("set_volume", val)

    @dbus_property(access=PropertyAccess.READ)
    def Position(self) -> "x":
        return self._state.position

    @dbus_property(access=PropertyAccess.READ)
    def MinimumRate(self) -> "d":
        return self._state.get("minimum_rate")

    @dbus_property(access=PropertyAccess.READ)
    def MaximumRate(self) -> "d":
        return self._state.get("maximum_rate")

    @dbus_property(access=PropertyAccess.READ)
    def CanGoNext(self) -> "b":
        return self._state.get("can_go_next")

    @dbus_property(access=PropertyAccess.READ)
    def CanGoPrevious(self) -> "b":
        return self._state.get("can_go_previous")

    @dbus_property(access=PropertyAccess.READ)
    def CanPlay(self) -> "b":
        return self._state.get("can_play")

    @dbus_property(access=PropertyAccess.READ)
    def CanPause(self) -> "b":
        return self._state.get("can_pause")

    @dbus_property(access=PropertyAccess.READ)
    def CanSeek(self) -> "b":
        return self._state.get("can_seek")

    @dbus_property(access=PropertyAccess.READ)
    def CanControl(self) -> "b":
        return self._state.get("can_control")

    @signal()
    def Seeked(self, position) -> "x":
        return position


def _dbus_value(field: str, value: Any) -> Any:
    if field == "metadata":
        return metadata_to_dbus(value)
    if field in ("loop_status", "playback_status"):
        return value.value
    return value


class ProxyPlayer:
    """The proxy player: both MPRIS interfaces plus change propagation.

    Listens to the mirrored state and emits PropertiesChanged for every
    field except Position, which MPRIS only announces through Seeked.
    """

    def __init__(self, state: MirrorState, request_callback: RequestCallback):
        self.root = MPRISRootInterface(state)
        self.player = MPRISPlayerInterface(state, request_callback)
        self._bus: MessageBus | None = None
        self._path = MPRIS_PATH
        state.on_change(self._on_state_changed)

    def export(self, bus: MessageBus, path: str = MPRIS_PATH) -> None:
        """Export both interfaces at ``path``."""
        self._bus = bus
        self._path = path
        bus.export(path, self.root)
        bus.export(path, self.player)
        logger.debug("Proxy player exported at %s", path)

    def unexport(self) -> None:
        if self._bus is None:
            return
        self._bus.unexport(self._path, self.root)
        self._bus.unexport(self._path, self.player)
        self._bus = None

    def emit_seeked(self, position: int) -> None:
        self.player.Seeked(position)

    def _on_state_changed(self, field: str, value: Any) -> None:
        if field == "position":
            return
        if field in _FIELD_TO_ROOT_PROPERTY:
            self.root.emit_properties_changed(
                {_FIELD_TO_ROOT_PROPERTY[field]: value}
            )
            return
        name = _FIELD_TO_PLAYER_PROPERTY.get(field)
        if name is not None:
            self.player.emit_properties_changed({name: _dbus_value(field, value)})

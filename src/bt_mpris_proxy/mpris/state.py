"""Mirrored MPRIS player state shared by the bridge and the proxy player.

The bridge copies every attribute of the active controller into a
``MirrorState``; the exported proxy player reads from it and listens for
changes so it can emit ``PropertiesChanged`` towards BlueZ.
"""

import copy
import logging
from enum import Enum
from typing import Any, Callable

from dbus_next import Variant

logger = logging.getLogger(__name__)


class LoopStatus(str, Enum):
    NONE = "None"
    TRACK = "Track"
    PLAYLIST = "Playlist"


class PlaybackStatus(str, Enum):
    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"


# Well-known metadata keys (xesam / mpris namespaces)
TRACK_ID = "mpris:trackid"
LENGTH = "mpris:length"
ART_URL = "mpris:artUrl"
TITLE = "xesam:title"
ARTIST = "xesam:artist"
ALBUM = "xesam:album"
ALBUM_ARTIST = "xesam:albumArtist"
GENRE = "xesam:genre"
TRACK_NUMBER = "xesam:trackNumber"
URL = "xesam:url"

# D-Bus signatures for well-known keys.  Keys not listed here are typed
# from their Python value.
METADATA_SIGNATURES = {
    TRACK_ID: "o",
    LENGTH: "x",
    ART_URL: "s",
    TITLE: "s",
    ARTIST: "as",
    ALBUM: "s",
    ALBUM_ARTIST: "as",
    GENRE: "as",
    TRACK_NUMBER: "i",
    URL: "s",
}

# Order matters: this is the order the controller notifications and the
# full resync copy fields in.
FIELDS = (
    "identity",
    "metadata",
    "position",
    "can_control",
    "can_go_next",
    "can_go_previous",
    "can_pause",
    "can_play",
    "can_seek",
    "minimum_rate",
    "maximum_rate",
    "rate",
    "loop_status",
    "shuffle",
    "volume",
    "playback_status",
)


def empty_metadata() -> dict[str, Any]:
    """Metadata advertised while no controller is bound."""
    return {
        TITLE: "",
        ARTIST: "",
        ALBUM: "",
        GENRE: "",
        LENGTH: 0,
        TRACK_NUMBER: 0,
    }


def _variant_for(value: Any, signature: str | None = None) -> Variant | None:
    if signature == "as":
        if isinstance(value, str):
            value = [value]
        return Variant("as", [str(v) for v in value])
    if signature is not None:
        return Variant(signature, value)
    if isinstance(value, bool):
        return Variant("b", value)
    if isinstance(value, int):
        return Variant("x", value)
    if isinstance(value, float):
        return Variant("d", value)
    if isinstance(value, str):
        return Variant("s", value)
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return Variant("as", list(value))
    return None


def metadata_to_dbus(metadata: dict[str, Any]) -> dict[str, Variant]:
    """Wrap a plain metadata mapping into an ``a{sv}`` dict."""
    result = {}
    for key, value in metadata.items():
        if isinstance(value, Variant):
            result[key] = value
            continue
        try:
            variant = _variant_for(value, METADATA_SIGNATURES.get(key))
        except (TypeError, ValueError) as e:
            logger.debug("Dropping metadata %s=%r: %s", key, value, e)
            continue
        if variant is None:
            logger.debug("Dropping metadata %s=%r (unsupported type)", key, value)
            continue
        result[key] = variant
    return result


def unwrap_variant(value: Any) -> Any:
    """Recursively replace dbus-next Variants by their plain values."""
    if isinstance(value, Variant):
        return unwrap_variant(value.value)
    if isinstance(value, dict):
        return {k: unwrap_variant(v) for k, v in value.items()}
    if isinstance(value, list):
        return [unwrap_variant(v) for v in value]
    return value


def _clamp_volume(value: Any) -> float:
    return max(0.0, min(1.0, float(value)))


_NORMALIZERS: dict[str, Callable[[Any], Any]] = {
    "identity": lambda v: "" if v is None else str(v),
    "metadata": lambda v: copy.deepcopy(dict(v or {})),
    "position": int,
    "can_control": bool,
    "can_go_next": bool,
    "can_go_previous": bool,
    "can_pause": bool,
    "can_play": bool,
    "can_seek": bool,
    "minimum_rate": float,
    "maximum_rate": float,
    "rate": float,
    "loop_status": LoopStatus,
    "shuffle": bool,
    "volume": _clamp_volume,
    "playback_status": PlaybackStatus,
}


class MirrorState:
    """Field-level store of the proxy player's attributes.

    Every setter is idempotent: writing the current value is a no-op and
    notifies nobody.  A changed value is reported to all listeners as
    ``(field, new_value)``.
    """

    def __init__(self):
        self._values: dict[str, Any] = {
            "identity": "",
            "metadata": empty_metadata(),
            "position": 0,
            "can_control": True,
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
        self._listeners: list[Callable[[str, Any], None]] = []

    def on_change(self, callback: Callable[[str, Any], None]) -> None:
        """Register a callback for field changes."""
        self._listeners.append(callback)

    def get(self, field: str) -> Any:
        if field == "metadata":
            return copy.deepcopy(self._values["metadata"])
        return self._values[field]

    def set(self, field: str, value: Any) -> bool:
        """Store ``value`` for ``field``.  Returns True if it changed."""
        value = _NORMALIZERS[field](value)
        if self._values[field] == value:
            return False
        self._values[field] = value
        for cb in self._listeners:
            cb(field, self.get(field))
        return True

    def reset_to_defaults(self) -> None:
        """Reset to the advertised "no media session" state.

        Rates and volume keep their last value.
        """
        self.set("identity", "")
        self.set("playback_status", PlaybackStatus.STOPPED)
        self.set("position", 0)
        self.set("shuffle", False)
        self.set("loop_status", LoopStatus.NONE)
        self.set("metadata", empty_metadata())
        self.set("can_go_next", False)
        self.set("can_go_previous", False)
        self.set("can_pause", False)
        self.set("can_play", False)
        self.set("can_seek", False)

    def snapshot(self) -> dict[str, Any]:
        """Plain copy of every field."""
        return {field: self.get(field) for field in FIELDS}

    @property
    def identity(self) -> str:
        return self._values["identity"]

    @property
    def metadata(self) -> dict[str, Any]:
        return self.get("metadata")

    @property
    def position(self) -> int:
        return self._values["position"]

    @property
    def loop_status(self) -> LoopStatus:
        return self._values["loop_status"]

    @property
    def playback_status(self) -> PlaybackStatus:
        return self._values["playback_status"]

    @property
    def has_track_list(self) -> bool:
        # Tracklist support is not implemented
        return False

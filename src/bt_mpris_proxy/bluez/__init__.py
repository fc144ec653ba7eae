"""BlueZ adapter discovery and media player registration."""

from .constants import MEDIA_INTERFACE, PLAYER_PATH
from .discovery import AdapterDiscovery
from .registration import PlayerRegistration

__all__ = [
    "AdapterDiscovery",
    "PlayerRegistration",
    "MEDIA_INTERFACE",
    "PLAYER_PATH",
]

"""Configuration loader for the Bluetooth MPRIS bridge.

Reads options from a JSON file, /data/options.json by default or the
path in ``BT_MPRIS_PROXY_OPTIONS``.  Unknown keys are ignored; a missing
or broken file falls back to defaults.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .bluez.constants import PLAYER_PATH

logger = logging.getLogger(__name__)

OPTIONS_PATH = "/data/options.json"
OPTIONS_ENV = "BT_MPRIS_PROXY_OPTIONS"


@dataclass
class AppConfig:
    """Application configuration."""

    log_level: str = "info"
    player_path: str = PLAYER_PATH
    # Only bind session-bus players whose name contains this ("" = any)
    player_filter: str = ""
    position_poll_interval: float = 1.0
    # None keeps the adapter query unbounded
    discovery_timeout_seconds: float | None = None
    web_enabled: bool = True
    web_port: int = 8099

    @classmethod
    def from_dict(cls, data: dict) -> "AppConfig":
        defaults = cls()
        timeout = data.get("discovery_timeout_seconds", defaults.discovery_timeout_seconds)
        return cls(
            log_level=str(data.get("log_level", defaults.log_level)),
            player_path=str(data.get("player_path", defaults.player_path)),
            player_filter=str(data.get("player_filter", defaults.player_filter)),
            position_poll_interval=float(
                data.get("position_poll_interval", defaults.position_poll_interval)
            ),
            discovery_timeout_seconds=float(timeout) if timeout else None,
            web_enabled=bool(data.get("web_enabled", defaults.web_enabled)),
            web_port=int(data.get("web_port", defaults.web_port)),
        )

    @classmethod
    def load(cls, path: str | None = None) -> "AppConfig":
        """Load configuration from the options file."""
        options_path = Path(path or os.environ.get(OPTIONS_ENV, OPTIONS_PATH))
        if not options_path.exists():
            logger.warning("Options file not found at %s, using defaults", options_path)
            return cls()

        try:
            data = json.loads(options_path.read_text())
            return cls.from_dict(data)
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            logger.error("Failed to parse options: %s, using defaults", e)
            return cls()

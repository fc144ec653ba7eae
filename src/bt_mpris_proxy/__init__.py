"""Expose the active MPRIS media player to BlueZ as an AVRCP target."""

__version__ = "0.1.0"

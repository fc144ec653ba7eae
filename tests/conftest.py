"""Shared fixtures for the bridge tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from bt_mpris_proxy.mpris.controller import MediaController
from bt_mpris_proxy.mpris.state import LoopStatus, PlaybackStatus


class FakeController(MediaController):
    """In-memory controller that records every imperative call."""

    def __init__(self, name: str = "fake", **values):
        super().__init__()
        self.bus_name = f"org.mpris.MediaPlayer2.{name}"
        self.calls: list[tuple] = []
        self._values.update(values)

    # Test helpers driving notifications
    def change(self, field: str, value) -> None:
        self._update(field, value)

    def emit_seeked(self, position: int) -> None:
        self._seeked(position)

    def next(self):
        self.calls.append(("next",))

    def previous(self):
        self.calls.append(("previous",))

    def play(self):
        self.calls.append(("play",))

    def pause(self):
        self.calls.append(("pause",))

    def play_pause(self):
        self.calls.append(("play_pause",))

    def stop(self):
        self.calls.append(("stop",))

    def seek(self, offset):
        self.calls.append(("seek", offset))

    def set_position(self, track_id, position):
        self.calls.append(("set_position", track_id, position))

    def open_uri(self, uri):
        self.calls.append(("open_uri", uri))

    def set_loop_status(self, loop_status):
        self.calls.append(("set_loop_status", loop_status))

    def set_rate(self, rate):
        self.calls.append(("set_rate", rate))

    def set_shuffle(self, shuffle):
        self.calls.append(("set_shuffle", shuffle))

    def set_volume(self, volume):
        self.calls.append(("set_volume", volume))


def make_playing_controller(name: str = "spotify") -> FakeController:
    return FakeController(
        name,
        identity=name.capitalize(),
        metadata={
            "mpris:trackid": "/org/mpris/MediaPlayer2/Track/1",
            "xesam:title": "Song",
            "xesam:artist": ["Artist"],
            "mpris:length": 180_000_000,
        },
        position=42_000_000,
        can_control=False,
        can_go_next=True,
        can_go_previous=True,
        can_pause=True,
        can_play=True,
        can_seek=True,
        minimum_rate=0.5,
        maximum_rate=2.0,
        rate=1.5,
        loop_status=LoopStatus.PLAYLIST,
        shuffle=True,
        volume=0.4,
        playback_status=PlaybackStatus.PLAYING,
    )


@pytest.fixture
def controller() -> FakeController:
    return make_playing_controller()


@pytest.fixture
def bus() -> MagicMock:
    """A system bus stand-in: send/call are awaitable and recorded."""
    mock = MagicMock()
    mock.send = AsyncMock(return_value=None)
    mock.call = AsyncMock()
    return mock

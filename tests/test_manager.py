"""Tests for choosing the active MPRIS player."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from dbus_next import Message, MessageType
from dbus_next.errors import InterfaceNotFoundError

from bt_mpris_proxy.mpris.client import MprisClientController
from bt_mpris_proxy.mpris.manager import MprisManager
from bt_mpris_proxy.mpris.state import PlaybackStatus

from conftest import FakeController

VLC = "org.mpris.MediaPlayer2.vlc"
SPOTIFY = "org.mpris.MediaPlayer2.spotify"


class StubClient(FakeController):
    """Session player stand-in; statuses come from ``initial``."""

    initial: dict[str, PlaybackStatus] = {}

    def __init__(self, bus, bus_name, position_poll_interval=1.0):
        super().__init__()
        self.bus_name = bus_name
        self.closed = False

    async def initialize(self):
        self._update("identity", self.bus_name.rsplit(".", 1)[-1])
        self._update(
            "playback_status",
            self.initial.get(self.bus_name, PlaybackStatus.STOPPED),
        )

    async def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def stub_client():
    StubClient.initial = {}
    with patch("bt_mpris_proxy.mpris.manager.MprisClientController", StubClient):
        yield


@pytest.fixture
def on_current() -> MagicMock:
    return MagicMock()


@pytest.fixture
def manager(bus, on_current) -> MprisManager:
    return MprisManager(bus, on_current)


def list_names_reply(names):
    reply = MagicMock()
    reply.message_type = MessageType.METHOD_RETURN
    reply.body = [names]
    return reply


@pytest.mark.asyncio
async def test_first_player_becomes_current(manager, on_current):
    await manager.add_player(VLC)

    assert manager.current.bus_name == VLC
    on_current.assert_called_once_with(manager.current)


@pytest.mark.asyncio
async def test_player_that_starts_playing_takes_over(manager, on_current):
    await manager.add_player(VLC)
    await manager.add_player(SPOTIFY)
    # Nothing plays yet, the first player stays current
    assert manager.current.bus_name == VLC

    spotify = manager._controllers[SPOTIFY]
    spotify.change("playback_status", PlaybackStatus.PLAYING)

    assert manager.current is spotify
    on_current.assert_called_with(spotify)


@pytest.mark.asyncio
async def test_playing_current_is_kept(manager):
    StubClient.initial = {VLC: PlaybackStatus.PLAYING}
    await manager.add_player(VLC)
    await manager.add_player(SPOTIFY)

    assert manager.current.bus_name == VLC


@pytest.mark.asyncio
async def test_paused_current_stays_until_another_plays(manager):
    StubClient.initial = {VLC: PlaybackStatus.PLAYING}
    await manager.add_player(VLC)
    await manager.add_player(SPOTIFY)

    vlc = manager._controllers[VLC]
    vlc.change("playback_status", PlaybackStatus.PAUSED)
    assert manager.current is vlc

    manager._controllers[SPOTIFY].change("playback_status", PlaybackStatus.PLAYING)
    assert manager.current.bus_name == SPOTIFY


@pytest.mark.asyncio
async def test_vanished_current_falls_back_to_most_recent(manager, on_current):
    StubClient.initial = {VLC: PlaybackStatus.PLAYING}
    await manager.add_player(VLC)
    await manager.add_player(SPOTIFY)
    vlc = manager._controllers[VLC]

    await manager.remove_player(VLC)

    assert manager.current.bus_name == SPOTIFY
    assert vlc.closed is True
    assert vlc.subscriber_count("playback_status") == 0


@pytest.mark.asyncio
async def test_last_player_leaving_clears_current(manager, on_current):
    await manager.add_player(VLC)
    await manager.remove_player(VLC)

    assert manager.current is None
    on_current.assert_called_with(None)


@pytest.mark.asyncio
async def test_filter_restricts_candidates(bus, on_current):
    manager = MprisManager(bus, on_current, player_filter="spotify")
    assert manager.is_candidate(SPOTIFY) is True
    assert manager.is_candidate(VLC) is False
    assert manager.is_candidate("org.freedesktop.Notifications") is False


@pytest.mark.asyncio
async def test_start_picks_up_running_players(bus, manager):
    bus.call = AsyncMock(side_effect=[
        list_names_reply([]),
        list_names_reply(["org.freedesktop.DBus", VLC, ":1.42"]),
    ])

    await manager.start()

    assert manager.players == [VLC]
    bus.add_message_handler.assert_called_once_with(manager._on_message)


@pytest.mark.asyncio
async def test_name_owner_changed_adds_and_removes(manager):
    appeared = Message(
        message_type=MessageType.SIGNAL,
        sender="org.freedesktop.DBus",
        path="/org/freedesktop/DBus",
        interface="org.freedesktop.DBus",
        member="NameOwnerChanged",
        signature="sss",
        body=[VLC, "", ":1.7"],
    )
    manager._on_message(appeared)
    await _drain(manager)
    assert manager.players == [VLC]

    vanished = Message(
        message_type=MessageType.SIGNAL,
        sender="org.freedesktop.DBus",
        path="/org/freedesktop/DBus",
        interface="org.freedesktop.DBus",
        member="NameOwnerChanged",
        signature="sss",
        body=[VLC, ":1.7", ""],
    )
    manager._on_message(vanished)
    await _drain(manager)
    assert manager.players == []
    assert manager.current is None


@pytest.mark.asyncio
async def test_stop_releases_everything(manager, on_current):
    await manager.add_player(VLC)
    await manager.stop()

    assert manager.players == []
    on_current.assert_called_with(None)


@pytest.mark.asyncio
async def test_player_without_mpris_interface_is_skipped(bus, manager, on_current, caplog):
    proxy = MagicMock()
    proxy.get_interface.side_effect = InterfaceNotFoundError("interface not found on this object")
    bus.introspect = AsyncMock(return_value=MagicMock())
    bus.get_proxy_object.return_value = proxy
    bus.call = AsyncMock(side_effect=[
        list_names_reply([]),
        list_names_reply([VLC]),
    ])

    with patch("bt_mpris_proxy.mpris.manager.MprisClientController", MprisClientController):
        await manager.start()

    assert manager.players == []
    assert manager.current is None
    on_current.assert_not_called()
    assert "Cannot attach to MPRIS player" in caplog.text


class GatedClient(StubClient):
    """Stub whose initialization waits until ``gate`` is set."""

    gate: asyncio.Event
    created: list = []

    def __init__(self, *args):
        super().__init__(*args)
        GatedClient.created.append(self)

    async def initialize(self):
        await self.gate.wait()
        await super().initialize()


@pytest.fixture
def gated_client():
    GatedClient.gate = asyncio.Event()
    GatedClient.created = []
    with patch("bt_mpris_proxy.mpris.manager.MprisClientController", GatedClient):
        yield GatedClient


@pytest.mark.asyncio
async def test_overlapping_adds_create_one_controller(manager, gated_client):
    StubClient.initial = {VLC: PlaybackStatus.PLAYING}
    first = asyncio.create_task(manager.add_player(VLC))
    second = asyncio.create_task(manager.add_player(VLC))
    await asyncio.sleep(0)
    gated_client.gate.set()
    await asyncio.gather(first, second)

    assert len(gated_client.created) == 1
    assert manager.current is gated_client.created[0]

    await manager.remove_player(VLC)

    assert manager.current is None
    assert gated_client.created[0].closed is True


@pytest.mark.asyncio
async def test_player_vanishing_while_attaching_is_dropped(manager, on_current, gated_client):
    pending = asyncio.create_task(manager.add_player(VLC))
    await asyncio.sleep(0)

    await manager.remove_player(VLC)
    gated_client.gate.set()
    await pending

    assert manager.players == []
    assert manager.current is None
    assert gated_client.created[0].closed is True
    on_current.assert_not_called()


@pytest.mark.asyncio
async def test_stop_waits_for_cancelled_tasks(manager, gated_client):
    manager._spawn(manager.add_player(VLC))
    tasks = list(manager._tasks)
    await asyncio.sleep(0)

    await manager.stop()

    assert all(task.done() for task in tasks)
    assert manager._tasks == set()
    assert manager.players == []


async def _drain(manager):
    while manager._tasks:
        await asyncio.gather(*manager._tasks)

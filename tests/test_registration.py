"""Tests for RegisterPlayer / UnregisterPlayer handling."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, call

import pytest
from dbus_next import MessageFlag

from bt_mpris_proxy.bluez.registration import PlayerRegistration
from bt_mpris_proxy.mpris.state import MirrorState, PlaybackStatus

ADAPTER = "/org/bluez/hci0"


@pytest.fixture
def state() -> MirrorState:
    return MirrorState()


@pytest.fixture
def registration(bus, state) -> PlayerRegistration:
    return PlayerRegistration(bus, state)


def test_registration_properties(state, registration):
    state.set("identity", "Spotify")
    state.set("playback_status", PlaybackStatus.PLAYING)
    props = registration.build_properties()

    assert set(props) == {
        "Identity",
        "Metadata",
        "Position",
        "CanControl",
        "CanGoNext",
        "CanGoPrevious",
        "CanPause",
        "CanPlay",
        "LoopStatus",
        "Shuffle",
        "PlaybackStatus",
    }
    assert props["Identity"].value == "Spotify"
    assert props["PlaybackStatus"].value == "Playing"
    assert props["Metadata"].signature == "a{sv}"
    assert props["Position"].signature == "x"
    assert props["LoopStatus"].signature == "s"
    assert props["PlaybackStatus"].signature == "s"


@pytest.mark.asyncio
async def test_register_sends_fire_and_forget_message(bus, registration):
    assert await registration.register(ADAPTER) is True

    bus.send.assert_awaited_once()
    message = bus.send.call_args.args[0]
    assert message.destination == "org.bluez"
    assert message.path == ADAPTER
    assert message.interface == "org.bluez.Media1"
    assert message.member == "RegisterPlayer"
    assert message.signature == "oa{sv}"
    assert message.body[0] == "/org/mpris/MediaPlayer2"
    assert message.flags & MessageFlag.NO_REPLY_EXPECTED
    assert registration.registered is True
    assert registration.adapter_path == ADAPTER


@pytest.mark.asyncio
async def test_register_is_idempotent(bus, registration):
    await registration.register(ADAPTER)
    assert await registration.register("/org/bluez/hci1") is False

    bus.send.assert_awaited_once()
    assert registration.adapter_path == ADAPTER


@pytest.mark.asyncio
async def test_send_failure_leaves_unregistered(bus, registration):
    bus.send = AsyncMock(side_effect=EOFError("bus closed"))

    assert await registration.register(ADAPTER) is False
    assert registration.registered is False
    assert registration.adapter_path is None

    # A later attempt is still possible
    bus.send = AsyncMock(return_value=None)
    assert await registration.register(ADAPTER) is True


@pytest.mark.asyncio
async def test_unregister_targets_registered_adapter(bus, registration):
    await registration.register(ADAPTER)
    bus.send.reset_mock()

    await registration.unregister()

    message = bus.send.call_args.args[0]
    assert message.member == "UnregisterPlayer"
    assert message.path == ADAPTER
    assert message.signature == "o"
    assert message.body == ["/org/mpris/MediaPlayer2"]
    assert registration.registered is False


@pytest.mark.asyncio
async def test_unregister_when_not_registered_sends_nothing(bus, registration):
    await registration.unregister()
    bus.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_unregister_failure_still_clears_state(bus, registration):
    await registration.register(ADAPTER)
    bus.send = AsyncMock(side_effect=OSError("broken pipe"))

    await registration.unregister()

    assert registration.registered is False
    assert registration.adapter_path is None


@pytest.mark.asyncio
async def test_service_loss_during_send_is_not_registered(bus, registration):
    gate = asyncio.Event()

    async def slow_send(message):
        await gate.wait()

    bus.send = AsyncMock(side_effect=slow_send)
    pending = asyncio.create_task(registration.register(ADAPTER))
    await asyncio.sleep(0)

    # A concurrent attempt is skipped while the first is in flight
    assert await registration.register(ADAPTER) is False

    registration.mark_unregistered()
    gate.set()

    assert await pending is False
    assert registration.registered is False


def test_state_changes_are_reported(registration):
    listener = MagicMock()
    registration.on_change(listener)

    registration._set(True, ADAPTER)
    registration._set(True, ADAPTER)
    registration.mark_unregistered()

    assert listener.call_args_list == [call(True, ADAPTER), call(False, None)]


def test_mark_unregistered_sends_nothing(bus, registration):
    registration._set(True, ADAPTER)
    registration.mark_unregistered()
    bus.send.assert_not_called()
    assert registration.registered is False

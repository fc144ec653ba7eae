"""Discovery of a BlueZ adapter the proxy player can be registered with.

An adapter is eligible when it exposes both org.bluez.Adapter1 and
org.bluez.Media1.  Discovery runs a GetManagedObjects query on startup
and whenever org.bluez (re)appears on the bus, and follows
InterfacesAdded/InterfacesRemoved in between.
"""

import asyncio
import logging

from dbus_next import Message, MessageType
from dbus_next.aio import MessageBus

from .constants import (
    ADAPTER_INTERFACE,
    BLUEZ_SERVICE,
    DBUS_INTERFACE,
    DBUS_PATH,
    DBUS_SERVICE,
    MEDIA_INTERFACE,
    OBJECT_MANAGER_INTERFACE,
    SERVICE_ABSENT_ERRORS,
)
from .registration import PlayerRegistration

logger = logging.getLogger(__name__)

MATCH_RULES = (
    "type='signal',sender='org.freedesktop.DBus',interface='org.freedesktop.DBus',"
    "member='NameOwnerChanged',arg0='org.bluez'",
    "type='signal',sender='org.bluez',path='/',"
    "interface='org.freedesktop.DBus.ObjectManager'",
)


class AdapterDiscovery:
    """Finds an eligible adapter and drives the registration state.

    Overlapping bulk queries are allowed; ``PlayerRegistration.register``
    being idempotent keeps them from registering twice.
    """

    def __init__(
        self,
        bus: MessageBus,
        registration: PlayerRegistration,
        timeout: float | None = None,
    ):
        self._bus = bus
        self._registration = registration
        self._timeout = timeout
        self._tasks: set[asyncio.Task] = set()
        self.known_adapter_path: str | None = None
        self.service_available = False

    async def start(self) -> None:
        """Subscribe to BlueZ presence/object signals and run the first query."""
        self._bus.add_message_handler(self._on_message)
        for rule in MATCH_RULES:
            reply = await self._bus.call(
                Message(
                    destination=DBUS_SERVICE,
                    path=DBUS_PATH,
                    interface=DBUS_INTERFACE,
                    member="AddMatch",
                    signature="s",
                    body=[rule],
                )
            )
            if reply is not None and reply.message_type == MessageType.ERROR:
                logger.warning("AddMatch %s failed: %s", rule, reply.error_name)
        self.search_and_register()

    async def stop(self) -> None:
        self._bus.remove_message_handler(self._on_message)
        for task in list(self._tasks):
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -- Bulk query --

    def search_and_register(self) -> asyncio.Task | None:
        """Start an asynchronous adapter query unless already registered."""
        if self._registration.registered:
            logger.debug("Player already registered, skipping adapter query")
            return None
        logger.debug("Querying BlueZ for adapters")
        return self._spawn(self._query_adapters())

    async def _query_adapters(self) -> None:
        message = Message(
            destination=BLUEZ_SERVICE,
            path="/",
            interface=OBJECT_MANAGER_INTERFACE,
            member="GetManagedObjects",
        )
        try:
            if self._timeout:
                reply = await asyncio.wait_for(self._bus.call(message), self._timeout)
            else:
                reply = await self._bus.call(message)
        except asyncio.TimeoutError:
            logger.warning("Adapter query timed out after %.1fs", self._timeout)
            return
        except (OSError, EOFError) as e:
            logger.warning("Failed to query Bluetooth adapters: %s", e)
            return
        await self.on_adapter_query_finished(reply)

    async def on_adapter_query_finished(self, reply: Message) -> None:
        """Handle the GetManagedObjects reply."""
        if reply.message_type == MessageType.ERROR:
            if reply.error_name in SERVICE_ABSENT_ERRORS:
                logger.info("BlueZ is not available")
                self.service_available = False
            else:
                detail = reply.body[0] if reply.body else ""
                logger.warning(
                    "Failed to query Bluetooth adapters: %s %s",
                    reply.error_name,
                    detail,
                )
            return

        self.service_available = True
        objects = reply.body[0] if reply.body else {}
        for path, interfaces in objects.items():
            if ADAPTER_INTERFACE in interfaces and MEDIA_INTERFACE in interfaces:
                if not self._registration.registered:
                    logger.info("Using adapter %s", path)
                    self.known_adapter_path = path
                    await self._registration.register(path)
                return
        logger.info("No Bluetooth adapter with media support found")

    # -- Incremental events --

    async def on_interfaces_added(self, path: str, interfaces: dict) -> None:
        if self._registration.registered or MEDIA_INTERFACE not in interfaces:
            return
        logger.info("Media-capable adapter added: %s", path)
        self.known_adapter_path = path
        await self._registration.register(path)

    def on_interfaces_removed(self, path: str, interfaces: list) -> None:
        if (
            self._registration.registered
            and self._registration.adapter_path == path
            and MEDIA_INTERFACE in interfaces
        ):
            logger.info("Registered adapter %s removed", path)
            self._registration.mark_unregistered()
            self.known_adapter_path = None

    def on_service_registered(self) -> None:
        logger.info("BlueZ service appeared, trying to register the player")
        self.service_available = True
        self.search_and_register()

    def on_service_unregistered(self) -> None:
        logger.info("BlueZ service vanished")
        self.service_available = False
        self._registration.mark_unregistered()
        self.known_adapter_path = None

    def _on_message(self, msg: Message) -> bool:
        if msg.message_type != MessageType.SIGNAL or not msg.body:
            return False

        if (
            msg.interface == DBUS_INTERFACE
            and msg.member == "NameOwnerChanged"
            and len(msg.body) >= 3
            and msg.body[0] == BLUEZ_SERVICE
        ):
            _, old_owner, new_owner = msg.body[:3]
            if old_owner:
                self.on_service_unregistered()
            if new_owner:
                self.on_service_registered()
        elif (
            msg.interface == OBJECT_MANAGER_INTERFACE
            and msg.path == "/"
            and len(msg.body) >= 2
        ):
            if msg.member == "InterfacesAdded":
                self._spawn(self.on_interfaces_added(msg.body[0], msg.body[1]))
            elif msg.member == "InterfacesRemoved":
                self.on_interfaces_removed(msg.body[0], msg.body[1])
        return False  # don't consume

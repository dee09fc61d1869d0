import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from dbus_fast import Message, MessageType
from dbus_fast.aio import MessageBus

from niritaskbar.errors import ProtocolError
from niritaskbar.notify.cache import ConnectionCache
from niritaskbar.notify.notification import (
    NOTIFICATIONS_INTERFACE,
    NOTIFY_MEMBER,
    EnrichedNotification,
    Notification,
)
from niritaskbar.shared.dbus_helpers import DbusHelpers, connect_session_bus, match_rule

logger = logging.getLogger(__name__)

NOTIFY_RULE = match_rule(
    type="method_call", interface=NOTIFICATIONS_INTERFACE, member=NOTIFY_MEMBER
)


class NotificationMonitor:
    """
    Watches every `Notify` call on the session bus.

    The monitor connection sees the calls on their way to the notification
    daemon; it never answers them. Each notification is enriched with the
    sender's pid from the connection cache and handed on in arrival order.
    """

    def __init__(
        self,
        handle_notification: Callable[[EnrichedNotification], Any],
        cache: Optional[ConnectionCache] = None,
        bus_factory: Callable[[], Awaitable[MessageBus]] = connect_session_bus,
    ):
        self.handle_notification = handle_notification
        self.cache = cache
        self.bus_factory = bus_factory
        self.bus: Optional[MessageBus] = None
        self._pending: asyncio.Queue = asyncio.Queue()
        self._forwarder: Optional[asyncio.Task] = None

    async def start(self) -> None:
        self.bus = await self.bus_factory()
        # The handler goes in first: a monitor gets traffic immediately.
        self.bus.add_message_handler(self.on_message)
        await DbusHelpers(self.bus).become_monitor([NOTIFY_RULE])
        self._forwarder = asyncio.create_task(self._forward(), name="notify-forwarder")
        logger.info("Monitoring the session bus for notifications")

    async def stop(self) -> None:
        if self._forwarder and not self._forwarder.done():
            self._forwarder.cancel()
            try:
                await self._forwarder
            except asyncio.CancelledError:
                pass
        self._forwarder = None
        if self.bus:
            self.bus.disconnect()
            self.bus = None

    async def wait_closed(self) -> None:
        if self.bus:
            try:
                await self.bus.wait_for_disconnect()
            except Exception as e:
                logger.error(f"D-Bus error: {e}")
                return
            logger.error("No longer monitoring D-Bus: monitor connection closed")

    def on_message(self, message: Message) -> Optional[bool]:
        if message.message_type != MessageType.METHOD_CALL:
            return None
        if not Notification.is_notify_call(message):
            return None
        try:
            notification = Notification.from_message(message)
        except ProtocolError as e:
            logger.warning(f"Ignoring malformed notification: {e}")
            return True
        self._pending.put_nowait((notification, message.sender))
        # Claim the call so the bus library does not reply from a monitor.
        return True

    async def enrich(
        self, notification: Notification, sender: Optional[str]
    ) -> EnrichedNotification:
        pid = None
        if self.cache is not None and sender:
            pid = await self.cache.get(sender)
        return EnrichedNotification(notification=notification, resolved_pid=pid)

    async def _forward(self) -> None:
        while True:
            notification, sender = await self._pending.get()
            enriched = await self.enrich(notification, sender)
            logger.debug(
                f"Notification from {notification.app_name} "
                f"(sender {sender}, pid {enriched.pid})"
            )
            self.handle_notification(enriched)

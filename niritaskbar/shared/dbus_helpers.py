import logging
from typing import List, Optional

from dbus_fast import BusType, Message, MessageType
from dbus_fast.aio import MessageBus

from niritaskbar.errors import TransportError

logger = logging.getLogger(__name__)

DBUS_SERVICE = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"
DBUS_INTERFACE = "org.freedesktop.DBus"
MONITORING_INTERFACE = "org.freedesktop.DBus.Monitoring"


def match_rule(**criteria: str) -> str:
    """
    Formats a D-Bus match rule, e.g. match_rule(type="signal", member="X").
    """
    return ",".join(f"{key}='{value}'" for key, value in criteria.items())


async def connect_session_bus() -> MessageBus:
    """Opens a new connection to the session bus."""
    try:
        return await MessageBus(bus_type=BusType.SESSION).connect()
    except Exception as e:
        raise TransportError(f"Cannot connect to the session bus: {e}") from e


class DbusHelpers:
    """
    Calls on the bus daemon itself, shared by the notification monitor and the
    connection cache.
    """

    def __init__(self, bus: MessageBus):
        self.bus = bus

    async def call_daemon(
        self,
        member: str,
        signature: str = "",
        body: Optional[list] = None,
        interface: str = DBUS_INTERFACE,
    ) -> Message:
        return await self.bus.call(
            Message(
                destination=DBUS_SERVICE,
                path=DBUS_PATH,
                interface=interface,
                member=member,
                signature=signature,
                body=body or [],
            )
        )

    async def get_connection_unix_process_id(self, name: str) -> Optional[int]:
        """
        Asks the bus daemon for the pid behind a connection name.

        Returns:
            The pid, or None if the daemon does not know the name.
        """
        reply = await self.call_daemon("GetConnectionUnixProcessID", "s", [name])
        if reply.message_type == MessageType.ERROR:
            logger.debug(f"No pid for bus name {name}: {reply.error_name} {reply.body}")
            return None
        return int(reply.body[0])

    async def become_monitor(self, rules: List[str]) -> None:
        """
        Turns this connection into a monitor receiving every message that
        matches one of `rules`. The connection can no longer send afterwards.
        """
        reply = await self.call_daemon(
            "BecomeMonitor", "asu", [rules, 0], interface=MONITORING_INTERFACE
        )
        if reply.message_type == MessageType.ERROR:
            raise TransportError(f"BecomeMonitor failed: {reply.error_name} {reply.body}")

    async def add_match(self, rule: str) -> None:
        reply = await self.call_daemon("AddMatch", "s", [rule])
        if reply.message_type == MessageType.ERROR:
            raise TransportError(f"AddMatch failed: {reply.error_name} {reply.body}")

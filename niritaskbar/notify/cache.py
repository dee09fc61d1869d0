"""
Maps bus connection names to the pid of the process that owns them.

A single worker task owns the map. Callers, bus signals and the periodic
sweep all reach it through one inbox, so the map is never shared.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from dbus_fast import Message, MessageType
from dbus_fast.aio import MessageBus

from niritaskbar.errors import DeliveryError, TransportError
from niritaskbar.shared.dbus_helpers import DBUS_INTERFACE, DbusHelpers, match_rule

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Awaitable[Optional[int]]]


@dataclass
class CacheEntry:
    pid: Optional[int]
    expiry: float


@dataclass
class _Get:
    peer: str
    result: asyncio.Future


@dataclass
class _OwnerChanged:
    name: str
    old_owner: str
    new_owner: str


@dataclass
class _Sweep:
    pass


def _settle(message) -> None:
    if isinstance(message, _Get) and not message.result.done():
        message.result.set_result(None)


class ConnectionCache:
    """
    A best-effort, expiring cache of connection name -> pid.

    Every lookup pushes the entry's expiry out again. Expired entries are
    dropped by a sweep every `sweep_interval` seconds, so an entry can outlive
    its expiry by up to one interval.
    """

    def __init__(
        self,
        resolver: Resolver,
        expiry: float = 300.0,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.resolver = resolver
        self.expiry = expiry
        self.sweep_interval = sweep_interval
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._ticker: Optional[asyncio.Task] = None

    def start(self, sweep: bool = True) -> None:
        self._worker = asyncio.create_task(self._run(), name="connection-cache")
        if sweep:
            self._ticker = asyncio.create_task(
                self._tick(), name="connection-cache-sweep"
            )

    async def stop(self) -> None:
        for task in (self._ticker, self._worker):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._ticker = self._worker = None
        # A worker cancelled before its first step never reaches its cleanup.
        while not self._inbox.empty():
            _settle(self._inbox.get_nowait())

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def _post(self, message) -> None:
        if not self.running:
            raise DeliveryError("connection cache worker is not running")
        self._inbox.put_nowait(message)

    async def get(self, peer: str) -> Optional[int]:
        """
        Returns the pid behind `peer`, asking the bus on a miss.

        Never raises: an unknown peer or a dead worker both yield None.
        """
        result = asyncio.get_running_loop().create_future()
        try:
            self._post(_Get(peer, result))
        except DeliveryError as e:
            logger.error(f"Unexpected error sending to connection cache: {e}")
            return None
        return await result

    def owner_changed(self, name: str, old_owner: str, new_owner: str) -> None:
        """Feeds a NameOwnerChanged signal into the cache."""
        try:
            self._post(_OwnerChanged(name, old_owner, new_owner))
        except DeliveryError as e:
            logger.debug(f"Dropping owner change for {name}: {e}")

    def sweep(self) -> None:
        """Queues a removal of every expired entry."""
        try:
            self._post(_Sweep())
        except DeliveryError as e:
            logger.debug(f"Dropping sweep: {e}")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, peer: str) -> bool:
        return peer in self._entries

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    async def _run(self) -> None:
        message = None
        try:
            while True:
                message = await self._inbox.get()
                try:
                    await self._handle(message)
                except Exception as e:
                    logger.error(f"Connection cache failed handling {message}: {e}")
                    _settle(message)
                message = None
        finally:
            # Callers still waiting on a stopped worker get "no pid known".
            _settle(message)
            while not self._inbox.empty():
                _settle(self._inbox.get_nowait())

    async def _handle(self, message) -> None:
        if isinstance(message, _Get):
            await self._handle_get(message)
        elif isinstance(message, _OwnerChanged):
            await self._handle_owner_changed(message)
        elif isinstance(message, _Sweep):
            self._expire(self.clock())

    async def _handle_get(self, message: _Get) -> None:
        entry = self._entries.get(message.peer)
        if entry is not None:
            entry.expiry = self.clock() + self.expiry
            pid = entry.pid
        else:
            pid = await self._resolve(message.peer)
            self._insert(message.peer, pid)
        if not message.result.done():
            message.result.set_result(pid)

    async def _handle_owner_changed(self, message: _OwnerChanged) -> None:
        if message.new_owner:
            pid = await self._resolve(message.new_owner)
            if pid is not None:
                self._insert(message.new_owner, pid)
        elif message.old_owner:
            self._entries.pop(message.old_owner, None)

    async def _resolve(self, peer: str) -> Optional[int]:
        try:
            return await self.resolver(peer)
        except Exception as e:
            logger.debug(f"Cannot resolve pid for {peer}: {e}")
            return None

    def _insert(self, peer: str, pid: Optional[int]) -> None:
        self._entries[peer] = CacheEntry(pid=pid, expiry=self.clock() + self.expiry)

    def _expire(self, now: float) -> None:
        expired = [peer for peer, entry in self._entries.items() if entry.expiry <= now]
        for peer in expired:
            del self._entries[peer]
        if expired:
            logger.debug(f"Expired {len(expired)} connection cache entries")


NAME_OWNER_CHANGED_RULE = match_rule(
    type="signal",
    sender="org.freedesktop.DBus",
    interface=DBUS_INTERFACE,
    member="NameOwnerChanged",
)


async def create_bus_cache(
    bus: MessageBus, expiry: float = 300.0, sweep_interval: float = 60.0
) -> ConnectionCache:
    """
    Starts a cache that resolves names through `bus` and follows its
    NameOwnerChanged signals.
    """
    helpers = DbusHelpers(bus)
    cache = ConnectionCache(
        helpers.get_connection_unix_process_id,
        expiry=expiry,
        sweep_interval=sweep_interval,
    )

    def on_message(message: Message) -> None:
        if (
            message.message_type == MessageType.SIGNAL
            and message.interface == DBUS_INTERFACE
            and message.member == "NameOwnerChanged"
        ):
            name, old_owner, new_owner = message.body
            cache.owner_changed(name, old_owner, new_owner)

    cache.start()
    try:
        await helpers.add_match(NAME_OWNER_CHANGED_RULE)
    except TransportError:
        await cache.stop()
        raise
    bus.add_message_handler(on_message)
    return cache

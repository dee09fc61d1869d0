import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Union

from dbus_fast.aio import MessageBus

from niritaskbar.core.compositor.events import Event
from niritaskbar.core.compositor.ipc import IPC
from niritaskbar.core.compositor.window_set import Snapshot, WindowSet
from niritaskbar.core.output_filter import OutputFilter
from niritaskbar.core.process import ProcessAncestry
from niritaskbar.errors import TaskbarError
from niritaskbar.ipc.client import CompositorEventReader
from niritaskbar.notify.cache import ConnectionCache, create_bus_cache
from niritaskbar.notify.correlator import Ancestry, NotificationCorrelator
from niritaskbar.notify.monitor import NotificationMonitor
from niritaskbar.notify.notification import EnrichedNotification
from niritaskbar.shared.concurrency_helper import ConcurrencyHelper
from niritaskbar.shared.config_handler import TaskbarConfig
from niritaskbar.shared.dbus_helpers import connect_session_bus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotUpdate:
    snapshot: Snapshot


@dataclass(frozen=True)
class UrgencyUpdate:
    """A window needs attention; cleared by the renderer once it is focused."""

    window_id: int
    urgent: bool = True


Update = Union[SnapshotUpdate, UrgencyUpdate]


class TaskbarState:
    """
    The core behind the taskbar widget.

    Compositor events and enriched notifications are funnelled into one inbox
    and handled by a single task, so the window set and the correlator always
    see them in arrival order. Renderers subscribe to the resulting updates.
    """

    def __init__(
        self,
        config: Optional[TaskbarConfig] = None,
        ipc: Optional[IPC] = None,
        ancestry: Optional[Ancestry] = None,
        bus_factory: Callable[[], Awaitable[MessageBus]] = connect_session_bus,
    ):
        self.config = config or TaskbarConfig()
        self.bus_factory = bus_factory
        self.ipc = ipc or IPC()
        self.window_set = WindowSet()
        self.correlator = NotificationCorrelator(
            self.config.notifications, ancestry or ProcessAncestry()
        )
        self.output_filter = OutputFilter(self.config.only_output)
        self.latest_snapshot: Optional[Snapshot] = None
        self.concurrency = ConcurrencyHelper(logger)
        self.reader: Optional[CompositorEventReader] = None
        self.monitor: Optional[NotificationMonitor] = None
        self.cache: Optional[ConnectionCache] = None
        self.cache_bus: Optional[MessageBus] = None
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._subscribers: List[asyncio.Queue] = []

    async def start(self) -> None:
        """Starts the compositor reader, the notification monitor and the event task."""
        self.concurrency.run_in_async_task(self.process_events(), name="taskbar-events")
        self.reader = CompositorEventReader(self.ipc, self.post)
        self.reader.start()
        if self.config.notifications.enabled:
            await self.start_notifications()

    async def start_notifications(self) -> None:
        settings = self.config.notifications
        try:
            self.cache_bus = await self.bus_factory()
            self.cache = await create_bus_cache(
                self.cache_bus,
                expiry=settings.cache_expiry_seconds,
                sweep_interval=settings.cache_sweep_interval_seconds,
            )
            self.monitor = NotificationMonitor(
                self.post, self.cache, bus_factory=self.bus_factory
            )
            await self.monitor.start()
        except TaskbarError as e:
            logger.error(f"Notification support unavailable: {e}")
            await self.stop_notifications()
            return
        self.concurrency.run_in_async_task(
            self.monitor.wait_closed(), name="notify-monitor"
        )

    async def stop_notifications(self) -> None:
        if self.monitor:
            await self.monitor.stop()
            self.monitor = None
        if self.cache:
            await self.cache.stop()
            self.cache = None
        if self.cache_bus:
            self.cache_bus.disconnect()
            self.cache_bus = None

    async def stop(self) -> None:
        await self.stop_notifications()
        await self.concurrency.cleanup_tasks()

    def post(self, item: Union[Event, EnrichedNotification]) -> None:
        """Queues a compositor event or notification for the event task."""
        self._inbox.put_nowait(item)

    async def process_events(self) -> None:
        while True:
            item = await self._inbox.get()
            try:
                await self.handle(item)
            except Exception as e:
                logger.error(f"Error handling {type(item).__name__}: {e}", exc_info=True)

    async def handle(self, item: Union[Event, EnrichedNotification]) -> None:
        if isinstance(item, EnrichedNotification):
            await self.handle_notification(item)
        else:
            self.handle_compositor_event(item)

    def handle_compositor_event(self, event: Event) -> None:
        snapshot = self.window_set.with_event(event)
        if snapshot is not None:
            self.latest_snapshot = snapshot
            self.publish(SnapshotUpdate(snapshot))

    async def handle_notification(self, notification: EnrichedNotification) -> None:
        for window_id in await self.correlator.correlate(
            notification, self.latest_snapshot
        ):
            self.publish(UrgencyUpdate(window_id))

    def subscribe(self) -> asyncio.Queue:
        """
        Returns a queue receiving every SnapshotUpdate and UrgencyUpdate.
        The latest snapshot, if any, is delivered first.
        """
        queue: asyncio.Queue = asyncio.Queue()
        if self.latest_snapshot is not None:
            queue.put_nowait(SnapshotUpdate(self.latest_snapshot))
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, update: Update) -> None:
        for queue in list(self._subscribers):
            queue.put_nowait(update)

    async def activate_window(self, window_id: int) -> None:
        """
        Asks the compositor to focus a window.

        Raises:
            ProtocolError: The compositor rejected the request.
            TransportError: The compositor could not be reached.
        """
        await self.concurrency.run_in_thread(self.ipc.activate_window, window_id)

    def visible_windows(self):
        if self.latest_snapshot is None:
            return ()
        return self.output_filter.windows(self.latest_snapshot)

    def app_classes(self, app_id: str) -> List[str]:
        return self.config.app_classes(app_id)

    def app_matches(self, app_id: str, title: str) -> List[str]:
        return self.config.app_matches(app_id, title)

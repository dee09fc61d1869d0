"""Tests for the taskbar core wiring events, notifications and subscribers."""

import asyncio

import pytest

from niritaskbar.core.taskbar import SnapshotUpdate, TaskbarState, UrgencyUpdate
from niritaskbar.errors import ProtocolError
from niritaskbar.notify.notification import EnrichedNotification, Notification
from niritaskbar.shared.config_handler import NotificationSettings, TaskbarConfig

from conftest import (
    FakeAncestry,
    FakeBus,
    error_reply,
    window_json,
    windows_changed,
    workspace_json,
    workspaces_changed,
)


class FakeIPC:
    def __init__(self, error=None):
        self.activated = []
        self.error = error

    def activate_window(self, window_id):
        if self.error:
            raise self.error
        self.activated.append(window_id)


def make_taskbar(only_output=None, parents=None, ipc=None):
    config = TaskbarConfig(
        notifications=NotificationSettings(enabled=False), only_output=only_output
    )
    return TaskbarState(config, ipc=ipc or FakeIPC(), ancestry=FakeAncestry(parents or {}))


def load_windows(taskbar):
    taskbar.handle_compositor_event(
        workspaces_changed(workspace_json(1), workspace_json(2, idx=2, output="HDMI-A-1"))
    )
    taskbar.handle_compositor_event(
        windows_changed(
            window_json(10, workspace_id=1, pid=500, pos=[1, 1]),
            window_json(20, workspace_id=2, pid=600, pos=[1, 1]),
        )
    )


@pytest.mark.asyncio
async def test_snapshot_is_published_once_ready():
    taskbar = make_taskbar()
    updates = taskbar.subscribe()

    load_windows(taskbar)

    assert updates.qsize() == 1
    update = updates.get_nowait()
    assert isinstance(update, SnapshotUpdate)
    assert [w.id for w in update.snapshot.windows] == [10, 20]


@pytest.mark.asyncio
async def test_late_subscriber_gets_latest_snapshot():
    taskbar = make_taskbar()
    load_windows(taskbar)

    updates = taskbar.subscribe()

    assert updates.get_nowait().snapshot is taskbar.latest_snapshot


@pytest.mark.asyncio
async def test_unsubscribed_queue_gets_nothing():
    taskbar = make_taskbar()
    updates = taskbar.subscribe()
    taskbar.unsubscribe(updates)

    load_windows(taskbar)

    assert updates.empty()


@pytest.mark.asyncio
async def test_notification_marks_window_urgent():
    taskbar = make_taskbar(parents={500: None})
    load_windows(taskbar)
    updates = taskbar.subscribe()
    updates.get_nowait()

    await taskbar.handle_notification(
        EnrichedNotification(Notification(summary="ping"), resolved_pid=500)
    )

    assert updates.get_nowait() == UrgencyUpdate(10)
    assert updates.empty()


@pytest.mark.asyncio
async def test_inbox_is_processed_in_order():
    taskbar = make_taskbar(parents={600: None})
    updates = taskbar.subscribe()
    task = asyncio.create_task(taskbar.process_events())
    try:
        # The notification arrives before any window is known and is dropped.
        taskbar.post(EnrichedNotification(Notification(summary="early"), resolved_pid=600))
        taskbar.post(workspaces_changed(workspace_json(2, output="HDMI-A-1")))
        taskbar.post(windows_changed(window_json(20, workspace_id=2, pid=600)))
        taskbar.post(EnrichedNotification(Notification(summary="late"), resolved_pid=600))

        received = [await asyncio.wait_for(updates.get(), 1) for _ in range(2)]
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    assert isinstance(received[0], SnapshotUpdate)
    assert received[1] == UrgencyUpdate(20)
    assert updates.empty()


@pytest.mark.asyncio
async def test_visible_windows_follow_output_filter():
    taskbar = make_taskbar(only_output="HDMI-A-1")
    assert taskbar.visible_windows() == ()

    load_windows(taskbar)

    assert [w.id for w in taskbar.visible_windows()] == [20]


@pytest.mark.asyncio
async def test_activate_window():
    ipc = FakeIPC()
    taskbar = make_taskbar(ipc=ipc)

    await taskbar.activate_window(20)

    assert ipc.activated == [20]


@pytest.mark.asyncio
async def test_activate_window_error_reaches_caller():
    taskbar = make_taskbar(ipc=FakeIPC(error=ProtocolError("no such window")))

    with pytest.raises(ProtocolError):
        await taskbar.activate_window(20)


def notifying_taskbar(replies):
    buses = []

    async def bus_factory():
        bus = FakeBus(replies)
        buses.append(bus)
        return bus

    taskbar = TaskbarState(
        TaskbarConfig(), ipc=FakeIPC(), ancestry=FakeAncestry({}), bus_factory=bus_factory
    )
    return taskbar, buses


def cache_tasks():
    return [
        task
        for task in asyncio.all_tasks()
        if task.get_name().startswith("connection-cache") and not task.done()
    ]


@pytest.mark.asyncio
async def test_notifications_start_and_stop():
    taskbar, buses = notifying_taskbar({})

    await taskbar.start_notifications()

    cache_bus, monitor_bus = buses
    assert cache_bus.members() == ["AddMatch"]
    assert monitor_bus.members() == ["BecomeMonitor"]
    assert taskbar.cache.running

    await taskbar.stop()

    assert cache_bus.disconnected and monitor_bus.disconnected
    assert taskbar.cache is None and taskbar.monitor is None
    assert not cache_tasks()


@pytest.mark.asyncio
async def test_failed_monitor_releases_the_cache():
    taskbar, buses = notifying_taskbar(
        {"BecomeMonitor": error_reply("org.freedesktop.DBus.Error.AccessDenied")}
    )

    await taskbar.start_notifications()

    assert len(buses) == 2
    assert all(bus.disconnected for bus in buses)
    assert taskbar.cache is None and taskbar.monitor is None
    assert not cache_tasks()

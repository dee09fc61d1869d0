"""Shared fixtures for niritaskbar tests."""

import asyncio
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, Optional

import pytest
from dbus_fast import MessageType

from niritaskbar.core.compositor.events import WindowsChanged, WorkspacesChanged
from niritaskbar.core.compositor.models import Window, Workspace
from niritaskbar.core.process import ProcessNotFound


def window_json(
    id: int,
    workspace_id: Optional[int] = 1,
    pid: Optional[int] = None,
    app_id: Optional[str] = None,
    title: Optional[str] = None,
    is_focused: bool = False,
    pos: Optional[list] = None,
) -> dict:
    """A window object as the compositor serialises it."""
    return {
        "id": id,
        "title": title,
        "app_id": app_id,
        "pid": pid,
        "workspace_id": workspace_id,
        "is_focused": is_focused,
        "is_floating": False,
        "is_urgent": False,
        "layout": {
            "pos_in_scrolling_layout": pos,
            "tile_size": [800.0, 600.0],
            "window_size": [800, 600],
            "tile_pos_in_workspace_view": None,
            "window_offset_in_tile": [0.0, 0.0],
        },
    }


def workspace_json(
    id: int, idx: int = 1, output: Optional[str] = "DP-1", is_focused: bool = False
) -> dict:
    return {
        "id": id,
        "idx": idx,
        "name": None,
        "output": output,
        "is_urgent": False,
        "is_active": True,
        "is_focused": is_focused,
        "active_window_id": None,
    }


def windows_changed(*windows: dict) -> WindowsChanged:
    return WindowsChanged([Window.from_dict(w) for w in windows])


def workspaces_changed(*workspaces: dict) -> WorkspacesChanged:
    return WorkspacesChanged([Workspace.from_dict(ws) for ws in workspaces])


class FakeAncestry:
    """Parent lookups served from a dict; unknown pids are not found."""

    def __init__(self, parents: Dict[int, Optional[int]]):
        self.parents = parents
        self.lookups = []

    async def parent(self, pid: int) -> Optional[int]:
        self.lookups.append(pid)
        if pid not in self.parents:
            raise ProcessNotFound(pid, Path(f"/proc/{pid}/stat"))
        return self.parents[pid]


@pytest.fixture
def proc_root(tmp_path: Path) -> Path:
    """An empty fake /proc; use write_stat to populate it."""
    root = tmp_path / "proc"
    root.mkdir()
    return root


def write_stat(proc_root: Path, pid: int, content: str) -> None:
    pid_dir = proc_root / str(pid)
    pid_dir.mkdir(parents=True, exist_ok=True)
    (pid_dir / "stat").write_text(content)


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResolver:
    """Resolves bus names from a dict, recording every call."""

    def __init__(self, pids: Dict[str, Optional[int]]):
        self.pids = pids
        self.calls = []

    async def __call__(self, peer: str) -> Optional[int]:
        self.calls.append(peer)
        return self.pids.get(peer)


def method_return(*body):
    return SimpleNamespace(message_type=MessageType.METHOD_RETURN, body=list(body))


def error_reply(error_name: str, text: str = ""):
    return SimpleNamespace(
        message_type=MessageType.ERROR, error_name=error_name, body=[text]
    )


class FakeBus:
    """
    Stands in for a dbus_fast MessageBus. Calls to the bus daemon are answered
    from `replies`, keyed by member; a value may be a reply or a callable
    taking the message.
    """

    def __init__(self, replies: Optional[dict] = None):
        self.replies = replies or {}
        self.handlers = []
        self.calls = []
        self.disconnected = False
        self._closed = asyncio.Event()

    def add_message_handler(self, handler):
        self.handlers.append(handler)

    async def call(self, message):
        self.calls.append(message)
        reply = self.replies.get(message.member)
        if callable(reply):
            reply = reply(message)
        return reply or method_return()

    def members(self):
        return [message.member for message in self.calls]

    def disconnect(self):
        self.disconnected = True
        self._closed.set()

    async def wait_for_disconnect(self):
        await self._closed.wait()


def pid_lookup(pids: Dict[str, int]):
    """A GetConnectionUnixProcessID answer for the given names."""

    def reply(message):
        (name,) = message.body
        if name in pids:
            return method_return(pids[name])
        return error_reply(
            "org.freedesktop.DBus.Error.NameHasNoOwner", f"{name} has no owner"
        )

    return reply

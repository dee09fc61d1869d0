"""
Typed compositor events.

The compositor writes one JSON object per line; each object has exactly one
key naming the event kind. Only the kinds the window set cares about are
decoded, everything else becomes an IgnoredEvent.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from niritaskbar.core.compositor.models import Window, WindowLayout, Workspace
from niritaskbar.errors import ProtocolError


@dataclass(frozen=True)
class WindowsChanged:
    windows: List[Window] = field(default_factory=list)


@dataclass(frozen=True)
class WorkspacesChanged:
    workspaces: List[Workspace] = field(default_factory=list)


@dataclass(frozen=True)
class WindowClosed:
    id: int


@dataclass(frozen=True)
class WindowOpenedOrChanged:
    window: Window


@dataclass(frozen=True)
class WindowFocusChanged:
    id: Optional[int]


@dataclass(frozen=True)
class WindowLayoutsChanged:
    changes: List[Tuple[int, WindowLayout]] = field(default_factory=list)


@dataclass(frozen=True)
class WorkspaceActivated:
    id: int
    focused: bool


@dataclass(frozen=True)
class IgnoredEvent:
    kind: str


Event = Union[
    WindowsChanged,
    WorkspacesChanged,
    WindowClosed,
    WindowOpenedOrChanged,
    WindowFocusChanged,
    WindowLayoutsChanged,
    WorkspaceActivated,
    IgnoredEvent,
]


def _windows_changed(body: Dict[str, Any]) -> WindowsChanged:
    return WindowsChanged([Window.from_dict(w) for w in body.get("windows", [])])


def _workspaces_changed(body: Dict[str, Any]) -> WorkspacesChanged:
    return WorkspacesChanged(
        [Workspace.from_dict(ws) for ws in body.get("workspaces", [])]
    )


def _window_layouts_changed(body: Dict[str, Any]) -> WindowLayoutsChanged:
    return WindowLayoutsChanged(
        [
            (int(window_id), WindowLayout.from_dict(layout))
            for window_id, layout in body.get("changes", [])
        ]
    )


_DECODERS = {
    "WindowsChanged": _windows_changed,
    "WorkspacesChanged": _workspaces_changed,
    "WindowClosed": lambda body: WindowClosed(int(body["id"])),
    "WindowOpenedOrChanged": lambda body: WindowOpenedOrChanged(
        Window.from_dict(body["window"])
    ),
    "WindowFocusChanged": lambda body: WindowFocusChanged(body.get("id")),
    "WindowLayoutsChanged": _window_layouts_changed,
    "WorkspaceActivated": lambda body: WorkspaceActivated(
        int(body["id"]), bool(body.get("focused", False))
    ),
}


def parse_event(payload: Any) -> Event:
    """
    Decode one compositor event object.

    Args:
        payload: The JSON-decoded event line.

    Returns:
        The typed event, or IgnoredEvent for kinds this package does not track.

    Raises:
        ProtocolError: The payload is not a single-key object or a tracked
            event is missing required fields.
    """
    if isinstance(payload, str):
        # Unit variants are serialised as bare strings.
        return IgnoredEvent(payload)
    if not isinstance(payload, dict) or len(payload) != 1:
        raise ProtocolError(f"malformed compositor event: {payload!r}")

    ((kind, body),) = payload.items()
    decoder = _DECODERS.get(kind)
    if decoder is None:
        return IgnoredEvent(kind)
    try:
        return decoder(body or {})
    except (KeyError, TypeError, ValueError) as e:
        raise ProtocolError(f"malformed {kind} event: {e}") from e

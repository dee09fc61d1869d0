import logging
import sys
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple, Union

from niritaskbar.core.compositor.events import (
    Event,
    IgnoredEvent,
    WindowClosed,
    WindowFocusChanged,
    WindowLayoutsChanged,
    WindowOpenedOrChanged,
    WindowsChanged,
    WorkspaceActivated,
    WorkspacesChanged,
)
from niritaskbar.core.compositor.models import Window, WindowLayout, Workspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """
    A complete, immutable view of the toplevel windows and workspaces.

    Every window carries the output of its workspace. Windows are grouped by
    output, then ordered by workspace index and by column and row within the
    scrolling layout.
    """

    windows: Tuple[Window, ...] = ()
    workspaces: Tuple[Workspace, ...] = ()

    def window(self, window_id: int) -> Optional[Window]:
        return next((w for w in self.windows if w.id == window_id), None)

    def workspace(self, workspace_id: int) -> Optional[Workspace]:
        return next((ws for ws in self.workspaces if ws.id == workspace_id), None)

    @property
    def focused_window(self) -> Optional[Window]:
        return next((w for w in self.windows if w.is_focused), None)


@dataclass
class Uninitialized:
    pass


@dataclass
class HaveWindowsOnly:
    windows: Dict[int, Window] = field(default_factory=dict)


@dataclass
class HaveWorkspacesOnly:
    workspaces: Dict[int, Workspace] = field(default_factory=dict)


@dataclass
class Ready:
    """The compositor state as best as it can be reconstructed from events."""

    windows: Dict[int, Window] = field(default_factory=dict)
    workspaces: Dict[int, Workspace] = field(default_factory=dict)

    def replace_windows(self, windows: Dict[int, Window]) -> None:
        self.windows = dict(windows)

    def replace_workspaces(self, workspaces: Dict[int, Workspace]) -> None:
        self.workspaces = dict(workspaces)

    def remove_window(self, window_id: int) -> None:
        self.windows.pop(window_id, None)

    def upsert_window(self, window: Window) -> None:
        # A newly focused window takes focus away from every other window.
        if window.is_focused:
            self.windows = {
                wid: w.with_focus(False) for wid, w in self.windows.items()
            }
        self.windows[window.id] = window

    def set_focus(self, window_id: Optional[int]) -> None:
        self.windows = {
            wid: w.with_focus(wid == window_id) for wid, w in self.windows.items()
        }

    def update_window_layout(self, window_id: int, layout: WindowLayout) -> None:
        window = self.windows.get(window_id)
        if window is not None:
            self.windows[window_id] = window.with_layout(layout)

    def activate_workspace(self, workspace_id: int, focused: bool) -> None:
        self.workspaces = {
            wsid: ws.with_focus(focused and wsid == workspace_id)
            for wsid, ws in self.workspaces.items()
        }

    def snapshot(self) -> Snapshot:
        placed = []
        for window in self.windows.values():
            if window.workspace_id is None:
                continue
            workspace = self.workspaces.get(window.workspace_id)
            if workspace is None or not workspace.output:
                continue
            placed.append((workspace, window.on_output(workspace.output)))

        placed.sort(key=lambda pair: _window_order(*pair))
        return Snapshot(
            windows=tuple(window for _, window in placed),
            workspaces=tuple(self.workspaces[wsid] for wsid in sorted(self.workspaces)),
        )


State = Union[Uninitialized, HaveWindowsOnly, HaveWorkspacesOnly, Ready]


def _window_order(
    workspace: Workspace, window: Window
) -> Tuple[str, int, int, int, int]:
    layout = window.layout
    column = layout.column if layout and layout.column is not None else sys.maxsize
    row = layout.row if layout and layout.row is not None else sys.maxsize
    return (workspace.output or "", workspace.idx, column, row, window.id)


def _by_id(items: Iterable) -> Dict[int, object]:
    return {item.id: item for item in items}


class WindowSet:
    """
    Rebuilds the compositor's window and workspace state from its event stream.

    The compositor sends one full window list and one full workspace list
    before any incremental event, in no guaranteed order. Until both have been
    seen the set buffers whichever arrived first and produces no snapshot.
    """

    def __init__(self):
        self.state: State = Uninitialized()

    @property
    def is_ready(self) -> bool:
        return isinstance(self.state, Ready)

    def with_event(self, event: Event) -> Optional[Snapshot]:
        """
        Applies one compositor event.

        Args:
            event: A decoded compositor event.

        Returns:
            A fresh snapshot if the set is ready after the event, else None.
        """
        state = self.state

        if isinstance(event, WindowsChanged):
            windows = _by_id(event.windows)
            if isinstance(state, HaveWorkspacesOnly):
                self.state = Ready(windows, state.workspaces)
            elif isinstance(state, Ready):
                state.replace_windows(windows)
            else:
                self.state = HaveWindowsOnly(windows)
        elif isinstance(event, WorkspacesChanged):
            workspaces = _by_id(event.workspaces)
            if isinstance(state, HaveWindowsOnly):
                self.state = Ready(state.windows, workspaces)
            elif isinstance(state, Ready):
                state.replace_workspaces(workspaces)
            else:
                self.state = HaveWorkspacesOnly(workspaces)
        elif isinstance(event, IgnoredEvent):
            return None
        elif not isinstance(state, Ready):
            logger.warning(
                f"Unexpected {type(event).__name__} event while {self.describe()}"
            )
        elif isinstance(event, WindowClosed):
            state.remove_window(event.id)
        elif isinstance(event, WindowOpenedOrChanged):
            state.upsert_window(event.window)
        elif isinstance(event, WindowFocusChanged):
            state.set_focus(event.id)
        elif isinstance(event, WindowLayoutsChanged):
            for window_id, layout in event.changes:
                state.update_window_layout(window_id, layout)
        elif isinstance(event, WorkspaceActivated):
            state.activate_workspace(event.id, event.focused)

        if isinstance(self.state, Ready):
            return self.state.snapshot()
        return None

    def describe(self) -> str:
        return {
            Uninitialized: "uninitialised",
            HaveWindowsOnly: "windows only",
            HaveWorkspacesOnly: "workspaces only",
            Ready: "ready",
        }[type(self.state)]

    def __str__(self) -> str:
        return self.describe()

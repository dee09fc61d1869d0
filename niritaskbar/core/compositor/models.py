from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple


def _pair(value: Any) -> Optional[Tuple[Any, Any]]:
    if value is None:
        return None
    first, second = value
    return (first, second)


@dataclass(frozen=True)
class WindowLayout:
    """Position and size of a window as reported by the compositor."""

    pos_in_scrolling_layout: Optional[Tuple[int, int]] = None
    tile_size: Optional[Tuple[float, float]] = None
    window_size: Optional[Tuple[int, int]] = None
    tile_pos_in_workspace_view: Optional[Tuple[float, float]] = None
    window_offset_in_tile: Optional[Tuple[float, float]] = None

    @property
    def column(self) -> Optional[int]:
        if self.pos_in_scrolling_layout is None:
            return None
        return self.pos_in_scrolling_layout[0]

    @property
    def row(self) -> Optional[int]:
        if self.pos_in_scrolling_layout is None:
            return None
        return self.pos_in_scrolling_layout[1]

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "WindowLayout":
        if not data:
            return cls()
        return cls(
            pos_in_scrolling_layout=_pair(data.get("pos_in_scrolling_layout")),
            tile_size=_pair(data.get("tile_size")),
            window_size=_pair(data.get("window_size")),
            tile_pos_in_workspace_view=_pair(data.get("tile_pos_in_workspace_view")),
            window_offset_in_tile=_pair(data.get("window_offset_in_tile")),
        )


@dataclass(frozen=True)
class Window:
    """
    A toplevel window.

    Instances are immutable; the window set replaces an entry whenever the
    compositor reports a change, so snapshots can share them safely.
    `output` is only filled in on windows handed out in a snapshot.
    """

    id: int
    title: Optional[str] = None
    app_id: Optional[str] = None
    pid: Optional[int] = None
    workspace_id: Optional[int] = None
    is_focused: bool = False
    is_floating: bool = False
    is_urgent: bool = False
    layout: Optional[WindowLayout] = None
    output: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Window":
        return cls(
            id=int(data["id"]),
            title=data.get("title"),
            app_id=data.get("app_id"),
            pid=data.get("pid"),
            workspace_id=data.get("workspace_id"),
            is_focused=bool(data.get("is_focused", False)),
            is_floating=bool(data.get("is_floating", False)),
            is_urgent=bool(data.get("is_urgent", False)),
            layout=WindowLayout.from_dict(data.get("layout")),
        )

    def with_focus(self, focused: bool) -> "Window":
        if self.is_focused == focused:
            return self
        return replace(self, is_focused=focused)

    def with_layout(self, layout: WindowLayout) -> "Window":
        return replace(self, layout=layout)

    def on_output(self, output: Optional[str]) -> "Window":
        return replace(self, output=output)


@dataclass(frozen=True)
class Workspace:
    id: int
    idx: int = 0
    name: Optional[str] = None
    output: Optional[str] = None
    is_urgent: bool = False
    is_active: bool = False
    is_focused: bool = False
    active_window_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Workspace":
        return cls(
            id=int(data["id"]),
            idx=int(data.get("idx", 0)),
            name=data.get("name"),
            output=data.get("output"),
            is_urgent=bool(data.get("is_urgent", False)),
            is_active=bool(data.get("is_active", False)),
            is_focused=bool(data.get("is_focused", False)),
            active_window_id=data.get("active_window_id"),
        )

    def with_focus(self, focused: bool) -> "Workspace":
        if self.is_focused == focused:
            return self
        return replace(self, is_focused=focused)

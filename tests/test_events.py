"""Tests for decoding compositor event lines."""

import pytest

from niritaskbar.core.compositor.events import (
    IgnoredEvent,
    WindowClosed,
    WindowFocusChanged,
    WindowLayoutsChanged,
    WindowOpenedOrChanged,
    WindowsChanged,
    WorkspaceActivated,
    WorkspacesChanged,
    parse_event,
)
from niritaskbar.errors import ProtocolError

from conftest import window_json, workspace_json


def test_windows_changed():
    event = parse_event(
        {"WindowsChanged": {"windows": [window_json(1, app_id="foot", pos=[1, 1])]}}
    )

    assert isinstance(event, WindowsChanged)
    (window,) = event.windows
    assert window.id == 1
    assert window.app_id == "foot"
    assert window.layout.column == 1
    assert window.output is None


def test_workspaces_changed():
    event = parse_event({"WorkspacesChanged": {"workspaces": [workspace_json(3, idx=2)]}})

    assert isinstance(event, WorkspacesChanged)
    assert event.workspaces[0].idx == 2
    assert event.workspaces[0].output == "DP-1"


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"WindowClosed": {"id": 7}}, WindowClosed(7)),
        ({"WindowFocusChanged": {"id": 7}}, WindowFocusChanged(7)),
        ({"WindowFocusChanged": {"id": None}}, WindowFocusChanged(None)),
        (
            {"WorkspaceActivated": {"id": 2, "focused": True}},
            WorkspaceActivated(2, True),
        ),
    ],
)
def test_simple_events(payload, expected):
    assert parse_event(payload) == expected


def test_window_opened_or_changed():
    event = parse_event({"WindowOpenedOrChanged": {"window": window_json(4, pid=12)}})

    assert isinstance(event, WindowOpenedOrChanged)
    assert event.window.pid == 12


def test_window_layouts_changed():
    event = parse_event(
        {
            "WindowLayoutsChanged": {
                "changes": [[5, {"pos_in_scrolling_layout": [2, 1]}]]
            }
        }
    )

    assert isinstance(event, WindowLayoutsChanged)
    ((window_id, layout),) = event.changes
    assert window_id == 5
    assert (layout.column, layout.row) == (2, 1)


def test_unknown_kind_is_ignored():
    assert parse_event({"OverviewOpenedOrClosed": {"is_open": True}}) == IgnoredEvent(
        "OverviewOpenedOrClosed"
    )


def test_bare_string_is_ignored():
    assert parse_event("Handled") == IgnoredEvent("Handled")


@pytest.mark.parametrize(
    "payload",
    [
        [1, 2],
        {"WindowClosed": {"id": 1}, "WindowFocusChanged": {"id": 1}},
        {"WindowClosed": {}},
        {"WindowOpenedOrChanged": {"window": {"title": "no id"}}},
    ],
)
def test_malformed_events(payload):
    with pytest.raises(ProtocolError):
        parse_event(payload)

"""
Works out which window a notification came from.

Rules are tried in order and the first one that flags a window wins:

1. Walk up the process tree from the sender's pid, flagging any unfocused
   window owned by a process on the way.
2. Match the notification's desktop-entry hint against application ids,
   exactly first and then, if enabled, fuzzily.

A notification that matches nothing is dropped.
"""

import logging
from typing import Awaitable, Dict, Iterable, List, Optional, Protocol

from niritaskbar.core.compositor.models import Window
from niritaskbar.core.compositor.window_set import Snapshot
from niritaskbar.core.process import ProcessError
from niritaskbar.notify.notification import EnrichedNotification
from niritaskbar.shared.config_handler import NotificationSettings

logger = logging.getLogger(__name__)


class Ancestry(Protocol):
    def parent(self, pid: int) -> Awaitable[Optional[int]]: ...


def pid_window_map(windows: Iterable[Window]) -> Dict[int, Window]:
    """Windows keyed by pid; windows without a pid cannot be matched."""
    return {window.pid: window for window in windows if window.pid is not None}


def last_segment(identifier: str) -> str:
    return identifier.rsplit(".", 1)[-1]


def fuzzy_app_id_match(app_id: str, entry: str) -> bool:
    """
    True if `app_id` names the same application as `entry`, ignoring case
    and any reverse-DNS prefix: "org.example.Foo" matches "foo".
    """
    if app_id.lower() == entry.lower():
        return True
    return last_segment(app_id).lower() == last_segment(entry).lower()


def match_desktop_entry(
    windows: Iterable[Window], entry: str, fuzzy: bool = False
) -> List[int]:
    """
    Returns the ids of windows whose application id matches `entry`.

    Exact matches win; fuzzy matches are only returned when there is no
    exact match. Every matching window is returned, there is no tie-break.
    """
    exact = []
    loose = []
    for window in windows:
        if not window.app_id:
            continue
        if window.app_id == entry:
            exact.append(window.id)
        elif fuzzy and fuzzy_app_id_match(window.app_id, entry):
            loose.append(window.id)
    return exact or loose


class NotificationCorrelator:
    def __init__(self, settings: NotificationSettings, ancestry: Ancestry):
        self.settings = settings
        self.ancestry = ancestry

    async def correlate(
        self, notification: EnrichedNotification, snapshot: Optional[Snapshot]
    ) -> List[int]:
        """
        Finds the windows that should be flagged as urgent.

        Args:
            notification: The notification with its resolved sender pid.
            snapshot: The latest window snapshot, if any has been produced.

        Returns:
            Ids of the windows to flag; empty if nothing matched. Never raises.
        """
        if snapshot is None:
            logger.debug("Dropping notification: no window snapshot yet")
            return []
        try:
            matched = await self.match_ancestry(notification, snapshot)
            if matched:
                logger.debug(f"Notification matched windows {matched} by process")
                return matched

            matched = self.match_desktop_entry(notification, snapshot)
            if matched:
                logger.debug(f"Notification matched windows {matched} by desktop entry")
                return matched
        except Exception as e:
            logger.error(f"Notification correlation failed: {e}", exc_info=True)
            return []

        logger.debug(
            f"No window found for notification from {notification.notification.app_name}"
        )
        return []

    async def match_ancestry(
        self, notification: EnrichedNotification, snapshot: Snapshot
    ) -> List[int]:
        pid = notification.pid
        if pid is None:
            return []

        windows = pid_window_map(snapshot.windows)
        marked: List[int] = []
        while pid is not None:
            window = windows.get(pid)
            # A focused window already has the user's attention.
            if window is not None and not window.is_focused and window.id not in marked:
                marked.append(window.id)
            try:
                pid = await self.ancestry.parent(pid)
            except ProcessError as e:
                logger.debug(f"Error walking up from process {pid}: {e}")
                break
        return marked

    def match_desktop_entry(
        self, notification: EnrichedNotification, snapshot: Snapshot
    ) -> List[int]:
        if not self.settings.use_desktop_entry:
            return []
        desktop_entry = notification.desktop_entry
        if not desktop_entry:
            return []
        entry = self.settings.map_app_id(desktop_entry)
        return match_desktop_entry(
            snapshot.windows, entry, fuzzy=self.settings.use_fuzzy_matching
        )

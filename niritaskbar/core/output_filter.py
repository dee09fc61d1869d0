from typing import Optional, Tuple

from niritaskbar.core.compositor.models import Window
from niritaskbar.core.compositor.window_set import Snapshot


class OutputFilter:
    """Decides whether windows on a given output should be shown."""

    def __init__(self, only: Optional[str] = None):
        self.only = only or None

    @property
    def shows_all(self) -> bool:
        return self.only is None

    def should_show(self, output: Optional[str]) -> bool:
        if self.only is None:
            return True
        return output == self.only

    def windows(self, snapshot: Snapshot) -> Tuple[Window, ...]:
        return tuple(w for w in snapshot.windows if self.should_show(w.output))

    def __repr__(self) -> str:
        return f"OutputFilter(only={self.only!r})"

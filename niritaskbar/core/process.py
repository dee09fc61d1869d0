import asyncio
from concurrent.futures import Executor
from pathlib import Path
from typing import Optional

from niritaskbar.errors import TaskbarError
from niritaskbar.shared.concurrency_helper import shared_executor

PROC_ROOT = Path("/proc")

# proc_pid_stat(5): pid (comm) state ppid ...
PPID_FIELD = 3


class ProcessError(TaskbarError):
    """A process descriptor could not be turned into a parent pid."""

    def __init__(self, pid: int, message: str):
        super().__init__(message)
        self.pid = pid


class ProcessNotFound(ProcessError):
    def __init__(self, pid: int, path: Path):
        super().__init__(pid, f"{path} does not exist")


class ProcessUnreadable(ProcessError):
    def __init__(self, pid: int, path: Path, error: OSError):
        super().__init__(pid, f"cannot read {path}: {error}")
        self.error = error


class MalformedStat(ProcessError):
    def __init__(self, pid: int, path: Path):
        super().__init__(pid, f"malformed {path}: insufficient fields")


class InvalidParentPid(ProcessError):
    def __init__(self, pid: int, path: Path, parent: str):
        super().__init__(pid, f"parent pid is not a valid number in {path}: {parent}")
        self.parent = parent


class ProcessAncestry:
    """
    Resolves the parent of a process from its /proc/<pid>/stat record.

    A parent pid of 0 means the process is pid 1 or an orphan and is
    reported as None, so callers walking up the tree stop there.
    """

    def __init__(
        self,
        proc_root: Path = PROC_ROOT,
        executor: Optional[Executor] = None,
    ):
        self.proc_root = Path(proc_root)
        self._executor = executor

    def stat_path(self, pid: int) -> Path:
        return self.proc_root / str(pid) / "stat"

    def parent_pid(self, pid: int) -> Optional[int]:
        """
        Reads the parent pid of `pid`, blocking on the file read.

        Raises:
            ProcessNotFound: The stat record does not exist.
            ProcessUnreadable: The stat record exists but cannot be read.
            MalformedStat: Fewer than four fields are present.
            InvalidParentPid: The fourth field is not an integer.
        """
        path = self.stat_path(pid)
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                stat = f.read()
        except FileNotFoundError:
            raise ProcessNotFound(pid, path)
        except OSError as e:
            raise ProcessUnreadable(pid, path, e) from e

        fields = stat.split()
        if len(fields) <= PPID_FIELD:
            raise MalformedStat(pid, path)

        try:
            ppid = int(fields[PPID_FIELD])
        except ValueError:
            raise InvalidParentPid(pid, path, fields[PPID_FIELD])

        return ppid if ppid != 0 else None

    async def parent(self, pid: int) -> Optional[int]:
        """Non-blocking wrapper around parent_pid using the shared executor."""
        loop = asyncio.get_running_loop()
        executor = self._executor or shared_executor()
        return await loop.run_in_executor(executor, self.parent_pid, pid)

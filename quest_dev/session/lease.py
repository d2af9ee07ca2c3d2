"""PID-file leases for sessions that must be unique system-wide.

The lock is advisory: the file is created with ``O_EXCL`` so two racing
acquirers cannot both create it, and a file whose recorded process is gone
is treated as stale and superseded.
"""

from __future__ import annotations

import os
from pathlib import Path

from quest_dev.errors import AlreadyRunning


def is_process_alive(pid: int) -> bool:
    """Probe *pid* with signal 0, which checks existence without side effects."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # exists, but owned by another user
        return True
    return True


def read_pid(path: Path) -> int | None:
    """Return the PID recorded in *path*, or None if missing or unreadable."""
    try:
        return int(path.read_text().strip())
    except (OSError, ValueError):
        return None


class PidLease:
    """An acquired PID file. Release it to end the session."""

    def __init__(self, path: Path, pid: int) -> None:
        self.path = path
        self.pid = pid
        self._released = False

    @classmethod
    def try_acquire(cls, path: Path, pid: int, *, what: str = "Session") -> PidLease:
        """Create *path* holding *pid*.

        Raises:
            AlreadyRunning: If the file records a live process.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(2):
            try:
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                existing = read_pid(path)
                if existing is not None and is_process_alive(existing):
                    raise AlreadyRunning(what, existing) from None
                path.unlink(missing_ok=True)
                continue
            with os.fdopen(fd, "w") as f:
                f.write(str(pid))
            return cls(path, pid)
        raise AlreadyRunning(what, read_pid(path) or 0)

    def record(self, pid: int) -> None:
        """Hand the lease to another process (e.g. a detached child)."""
        self.path.write_text(str(pid))
        self.pid = pid

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        if read_pid(self.path) == self.pid:
            self.path.unlink(missing_ok=True)

    def __enter__(self) -> PidLease:
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()

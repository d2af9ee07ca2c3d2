"""Settings restoration for stay-awake sessions.

The parent restores the Quest's screen timeout from its signal handlers.
If the parent dies without running them (SIGKILL, closed terminal), a
detached watchdog child notices the missing parent and restores instead.
Both paths go through a ``CleanupLatch`` so restoration runs at most once
per process.
"""

from __future__ import annotations

from collections.abc import Callable
import os
from pathlib import Path
import subprocess
import sys
import threading
import time

from quest_dev.device.adb import restore_settings_sync
from quest_dev.helpers.console import console
from quest_dev.session.lease import is_process_alive, read_pid

POLL_INTERVAL = 5.0


class CleanupLatch:
    """Lets exactly one caller through, however many times it is tried."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    def acquire(self) -> bool:
        with self._lock:
            if self._fired:
                return False
            self._fired = True
            return True


def restore_once(
    latch: CleanupLatch, original_timeout: int, pid_file: Path, owner_pid: int
) -> bool:
    """Restore settings, then drop the PID file, unless already done.

    The PID file is only removed while it still names *owner_pid*; a newer
    session may have superseded it.
    """
    if not latch.acquire():
        return False
    restore_settings_sync(original_timeout)
    # a new session may start as soon as the PID file is gone
    if read_pid(pid_file) == owner_pid:
        pid_file.unlink(missing_ok=True)
    return True


def spawn_watchdog(parent_pid: int, original_timeout: int) -> subprocess.Popen[bytes]:
    """Start the detached watchdog child for *parent_pid*."""
    return subprocess.Popen(
        [
            sys.executable,
            "-m",
            "quest_dev.main",
            "stay-awake-watchdog",
            "--parent-pid",
            str(parent_pid),
            "--original-timeout",
            str(original_timeout),
        ],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
        env=os.environ.copy(),
    )


def watch_parent(
    parent_pid: int,
    original_timeout: int,
    pid_file: Path,
    *,
    interval: float = POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
    is_alive: Callable[[int], bool] = is_process_alive,
) -> None:
    """Block until *parent_pid* disappears, then restore settings once."""
    latch = CleanupLatch()
    while is_alive(parent_pid):
        sleep(interval)
    console.print("Parent process died, restoring Quest settings...")
    restore_once(latch, original_timeout, pid_file, parent_pid)

"""Logcat capture sessions written to LOG_DIR.

Quest's ring buffer fills in seconds under VR load, so capture has to run
to a file in the background before testing starts. Each session writes
``logcat_YYYYMMDD_HHMMSS.txt``, records the capture process in
``.logcat_pid`` and points ``latest.txt`` at the newest file.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import os
from pathlib import Path
import signal
import subprocess

from quest_dev.config import load_settings
from quest_dev.session.lease import PidLease, is_process_alive, read_pid

PID_FILENAME = ".logcat_pid"
LATEST_LINK = "latest.txt"


@dataclass
class FileStats:
    size: str
    lines: int


def log_dir() -> Path:
    return load_settings().log_dir


def pid_file() -> Path:
    return log_dir() / PID_FILENAME


def log_filename(when: datetime | None = None) -> str:
    when = when or datetime.now(timezone.utc)
    return f"logcat_{when.strftime('%Y%m%d_%H%M%S')}.txt"


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size}B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}K"
    return f"{size / (1024 * 1024):.1f}M"


def file_stats(path: Path) -> FileStats | None:
    try:
        size = path.stat().st_size
        with path.open("rb") as f:
            lines = sum(1 for _ in f)
    except OSError:
        return None
    return FileStats(size=format_size(size), lines=lines)


def latest_log() -> Path | None:
    """The file ``latest.txt`` points at, if it still exists."""
    link = log_dir() / LATEST_LINK
    try:
        target = os.readlink(link)
    except OSError:
        return None
    path = log_dir() / target
    return path if path.exists() else None


def recent_logs(limit: int = 5) -> list[str]:
    directory = log_dir()
    if not directory.is_dir():
        return []
    files = [p for p in directory.glob("*.txt") if p.is_file() and not p.is_symlink()]
    files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    return [p.name for p in files[:limit]]


def active_pid() -> int | None:
    """PID of a running capture, or None."""
    pid = read_pid(pid_file())
    if pid is not None and is_process_alive(pid):
        return pid
    return None


def acquire() -> PidLease:
    """Claim the capture slot before anything is spawned.

    Raises:
        AlreadyRunning: If a capture is already in progress.
    """
    return PidLease.try_acquire(pid_file(), os.getpid(), what="Logcat capture")


def spawn_capture(log_path: Path, filter_spec: str | None) -> int:
    """Start a detached ``adb logcat`` writing to *log_path*; return its PID."""
    args = [load_settings().adb, "logcat", "-v", "threadtime"]
    if filter_spec:
        args.append(filter_spec)
    with log_path.open("wb") as out:
        proc = subprocess.Popen(
            args,
            stdin=subprocess.DEVNULL,
            stdout=out,
            stderr=out,
            start_new_session=True,
        )
    return proc.pid


def update_latest_link(log_path: Path) -> None:
    link = log_dir() / LATEST_LINK
    if link.is_symlink() or link.exists():
        link.unlink()
    link.symlink_to(log_path.name)


def stop_capture() -> tuple[int | None, bool]:
    """Terminate the recorded capture and clear the PID file.

    Returns (recorded pid, whether a live process was signalled).
    """
    path = pid_file()
    pid = read_pid(path)
    signalled = False
    if pid is not None and is_process_alive(pid):
        try:
            os.kill(pid, signal.SIGTERM)
            signalled = True
        except ProcessLookupError:
            pass
    path.unlink(missing_ok=True)
    return pid, signalled

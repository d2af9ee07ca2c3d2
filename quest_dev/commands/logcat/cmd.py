"""CLI commands for capturing Quest logcat to files."""

from __future__ import annotations

import asyncio
import subprocess

import click
from rich.markup import escape

from quest_dev.errors import QuestDevError
from quest_dev.helpers.console import console, warn


@click.group()
def logcat() -> None:
    """Capture Android logcat to files (start, stop, status, tail)."""


async def _prepare_device() -> None:
    from quest_dev.device.adb import adb, check_adb, check_devices

    check_adb()
    await check_devices()
    # Clear the ring buffer so the capture only holds this session
    await adb("logcat", "-c")
    console.print("Ring buffer cleared.")


@logcat.command()
@click.option("--filter", "filter_spec", default=None, help="logcat filter spec, e.g. 'chromium:V *:S'")
def start(filter_spec: str | None) -> None:
    """Start capturing logcat in the background."""
    from quest_dev.commands.logcat import session

    lease = session.acquire()
    try:
        asyncio.run(_prepare_device())
        session.log_dir().mkdir(parents=True, exist_ok=True)
        log_path = session.log_dir() / session.log_filename()
        console.print(f"Starting capture to: {escape(str(log_path))}")
        if filter_spec:
            console.print(f"Filter: {escape(filter_spec)}")
        pid = session.spawn_capture(log_path, filter_spec)
    except BaseException:
        lease.release()
        raise
    lease.record(pid)

    try:
        session.update_latest_link(log_path)
    except OSError as e:
        warn(f"Failed to create symlink: {e}")

    console.print(f"[green]Capturing (PID: {pid})[/green]")
    console.print()
    console.print("Now run your test. When done: quest-dev logcat stop")


def _print_latest_stats(label: str) -> None:
    from quest_dev.commands.logcat import session

    latest = session.latest_log()
    if latest is None:
        return
    stats = session.file_stats(latest)
    if stats:
        console.print(f"{label}: {escape(str(latest))}")
        console.print(f"Size: {stats.size} ({stats.lines} lines)")


@logcat.command()
def stop() -> None:
    """Stop the background capture."""
    from quest_dev.commands.logcat import session

    pid, signalled = session.stop_capture()
    if pid is None:
        console.print("No capture in progress")
        return
    if signalled:
        console.print(f"Capture stopped (PID: {pid})")
    else:
        console.print("Capture process already ended")

    console.print()
    _print_latest_stats("Log file")


@logcat.command()
def status() -> None:
    """Show whether a capture is running."""
    from quest_dev.commands.logcat import session

    pid = session.active_pid()
    if pid is not None:
        console.print(f"Capturing (PID: {pid})")
        _print_latest_stats("File")
        return

    console.print("Not capturing")
    recent = session.recent_logs()
    if recent:
        console.print()
        console.print("Recent logs:")
        for name in recent:
            console.print(f"  {escape(name)}")


@logcat.command()
def tail() -> None:
    """Follow the current capture file (Ctrl+C to stop)."""
    from quest_dev.commands.logcat import session

    latest = session.latest_log()
    if latest is None:
        raise QuestDevError("No active log file", ["Start one with: quest-dev logcat start"])

    console.print(f"Tailing: {escape(str(latest))}")
    console.print("Press Ctrl+C to stop\n")
    try:
        subprocess.run(["tail", "-f", str(latest)], check=False)
    except KeyboardInterrupt:
        pass
    except OSError as e:
        raise QuestDevError(f"Failed to tail log: {e}") from e

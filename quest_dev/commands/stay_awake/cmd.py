"""CLI commands keeping the Quest screen awake until interrupted."""

from __future__ import annotations

import asyncio
import os
import signal
import subprocess

import click

from quest_dev.commands.stay_awake.watchdog import CleanupLatch, restore_once
from quest_dev.errors import BridgeError
from quest_dev.helpers.console import console, warn
from quest_dev.session.lease import PidLease

DEFAULT_IDLE_TIMEOUT_MS = 300_000
TERMINATING_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


class StayAwakeSession:
    """Owns the PID lease, the watchdog child and the idle timer.

    ``cleanup`` is the single exit path: signals, idle expiry and setup
    failures all go through it, and the latch makes it run once.
    """

    def __init__(self, lease: PidLease, original_timeout: int, idle_timeout_ms: int) -> None:
        self.lease = lease
        self.original_timeout = original_timeout
        self.idle_timeout = idle_timeout_ms / 1000
        self.latch = CleanupLatch()
        self.watchdog: subprocess.Popen[bytes] | None = None
        self._idle_handle: asyncio.TimerHandle | None = None
        self._stopped: asyncio.Event | None = None

    def cleanup(self, reason: str) -> None:
        if self.latch.fired:
            return
        console.print(f"\n{reason}")
        if self._idle_handle is not None:
            self._idle_handle.cancel()
        if self.watchdog is not None:
            try:
                self.watchdog.terminate()
            except OSError:
                pass
        console.print("Restoring original settings...")
        restore_once(self.latch, self.original_timeout, self.lease.path, self.lease.pid)
        self.lease.release()
        if self._stopped is not None:
            self._stopped.set()

    def reset_idle_timer(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
        loop = asyncio.get_running_loop()
        self._idle_handle = loop.call_later(
            self.idle_timeout, self.cleanup, "Idle timeout reached, exiting..."
        )

    def on_activity(self) -> None:
        console.print("Activity detected, resetting idle timer")
        self.reset_idle_timer()

    async def wait(self) -> None:
        """Run until a terminating signal or the idle timer fires."""
        loop = asyncio.get_running_loop()
        self._stopped = asyncio.Event()
        for sig in TERMINATING_SIGNALS:
            loop.add_signal_handler(sig, self.cleanup, f"Received {sig.name}.")
        loop.add_signal_handler(signal.SIGUSR1, self.on_activity)
        try:
            self.reset_idle_timer()
            console.print("Keeping Quest awake...")
            await self._stopped.wait()
        finally:
            for sig in (*TERMINATING_SIGNALS, signal.SIGUSR1):
                loop.remove_signal_handler(sig)


async def start_session(idle_timeout_ms: int) -> StayAwakeSession:
    """Take the lease, switch the device to a long timeout, spawn the watchdog."""
    from quest_dev.commands.stay_awake.watchdog import spawn_watchdog
    from quest_dev.config import load_settings
    from quest_dev.device.adb import (
        LONG_SCREEN_TIMEOUT,
        check_adb,
        check_devices,
        disable_proximity_sensor,
        get_screen_timeout,
        set_screen_timeout,
        wake_screen,
    )

    check_adb()
    await check_devices(quiet=True)

    lease = PidLease.try_acquire(
        load_settings().stay_awake_pid_file, os.getpid(), what="stay-awake"
    )
    try:
        original = await get_screen_timeout()
    except BaseException:
        lease.release()
        raise
    console.print(f"Original screen timeout: {original}ms ({round(original / 1000)}s)")

    session = StayAwakeSession(lease, original, idle_timeout_ms)
    # the watchdog must exist before any device setting changes
    try:
        session.watchdog = spawn_watchdog(os.getpid(), original)
    except OSError as e:
        warn(f"Failed to spawn watchdog process: {e}")

    try:
        await wake_screen()
        console.print("Quest screen woken up")
        await disable_proximity_sensor()
        console.print("Proximity sensor disabled")
    except BridgeError as e:
        warn(f"Failed to wake screen or disable proximity sensor: {e.stderr.strip()}")

    try:
        await set_screen_timeout(LONG_SCREEN_TIMEOUT)
    except BridgeError:
        session.cleanup("Failed to set screen timeout.")
        raise
    console.print("Screen timeout set to 24 hours")

    console.print(
        f"Quest will stay awake (idle timeout: {round(idle_timeout_ms / 1000)}s). "
        "Press Ctrl-C to restore original settings."
    )
    return session


async def _stay_awake(idle_timeout_ms: int) -> None:
    session = await start_session(idle_timeout_ms)
    await session.wait()


@click.command("stay-awake")
@click.option(
    "--idle-timeout",
    type=click.IntRange(min=1000),
    default=DEFAULT_IDLE_TIMEOUT_MS,
    show_default=True,
    help="Exit after this many ms without activity (send SIGUSR1 to reset)",
)
def stay_awake(idle_timeout: int) -> None:
    """Keep the Quest screen awake; restore settings on exit."""
    asyncio.run(_stay_awake(idle_timeout))


@click.command("stay-awake-watchdog", hidden=True)
@click.option("--parent-pid", type=int, required=True)
@click.option("--original-timeout", type=int, required=True)
def stay_awake_watchdog(parent_pid: int, original_timeout: int) -> None:
    """Internal: restore settings once the stay-awake parent is gone."""
    from quest_dev.commands.stay_awake.watchdog import watch_parent
    from quest_dev.config import load_settings

    watch_parent(parent_pid, original_timeout, load_settings().stay_awake_pid_file)

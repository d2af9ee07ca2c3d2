"""Screenshot capture through the Quest's native capture service.

The service writes the JPEG asynchronously, so after triggering it we poll
the screenshot directory for a new file and only pull it once its last two
bytes are the JPEG end-of-image marker. Reading the trailer straight off
the device avoids pulling a half-written file.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from rich.markup import escape

from quest_dev.device.adb import adb, adb_bytes, adb_full
from quest_dev.errors import ArtifactTimeout, BridgeError
from quest_dev.helpers.console import console, warn

SCREENSHOT_DIR = "/sdcard/Oculus/Screenshots"
CAPTURE_SERVICE = "com.oculus.metacam/.capture.CaptureService"
CAPTURE_ACTION = "TAKE_SCREENSHOT"
JPEG_EOI = b"\xff\xd9"

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class PollPolicy:
    interval: float = 0.5
    max_attempts: int = 20


@dataclass
class CaptureResult:
    remote_name: str
    local_path: Path
    attempts: int
    remote_deleted: bool


def is_complete(trailer: bytes) -> bool:
    """True iff *trailer* is exactly the JPEG end-of-image marker."""
    return trailer == JPEG_EOI


def remote_path(name: str) -> str:
    return f"{SCREENSHOT_DIR}/{name}"


async def latest_artifact() -> str | None:
    """Most recently modified screenshot name, or None if there is none."""
    result = await adb_full("shell", "ls", "-t", f"{SCREENSHOT_DIR}/")
    if not result.ok:
        return None
    for line in result.stdout.splitlines():
        name = line.strip()
        if name.endswith(".jpg"):
            return name
    return None


async def trigger_capture() -> None:
    """Ask the capture service for a screenshot. Failure is fatal."""
    await adb(
        "shell",
        "am",
        "startservice",
        "-n",
        CAPTURE_SERVICE,
        "-a",
        CAPTURE_ACTION,
    )
    console.print("Screenshot service triggered")


async def verify_artifact(name: str) -> bool:
    """Read the file's last two bytes on the device and check the marker."""
    try:
        trailer = await adb_bytes("exec-out", "tail", "-c", "2", remote_path(name))
    except BridgeError:
        return False
    return is_complete(trailer)


async def wait_for_artifact(
    previous: str | None,
    policy: PollPolicy = PollPolicy(),
    sleep: Sleep | None = None,
) -> tuple[str, int]:
    """Poll until a new, complete screenshot appears.

    Returns (name, attempts used). An incomplete file keeps the loop going
    since the service may still be writing it.

    Raises:
        ArtifactTimeout: If *policy.max_attempts* ticks pass without one.
    """
    sleep = sleep or asyncio.sleep
    for attempt in range(1, policy.max_attempts + 1):
        await sleep(policy.interval)
        candidate = await latest_artifact()
        if candidate is None or candidate == previous:
            continue
        if await verify_artifact(candidate):
            return candidate, attempt
    raise ArtifactTimeout(policy.max_attempts)


async def pull_artifact(name: str, local_path: Path) -> None:
    await adb("pull", remote_path(name), str(local_path))
    console.print(f"[green]Screenshot saved to: {escape(str(local_path))}[/green]")


async def delete_artifact(name: str) -> bool:
    """Remove the remote copy; a failure only warrants a warning."""
    result = await adb_full("shell", "rm", remote_path(name))
    if not result.ok:
        warn(f"Failed to delete screenshot from Quest: {name}")
        return False
    console.print(f"Deleted screenshot from Quest: {escape(name)}")
    return True


async def capture_screenshot(
    local_path: Path,
    *,
    policy: PollPolicy = PollPolicy(),
    sleep: Sleep | None = None,
) -> CaptureResult:
    """Trigger, verify, pull and clean up one screenshot."""
    previous = await latest_artifact()
    await trigger_capture()

    console.print("Waiting for screenshot to save...")
    name, attempts = await wait_for_artifact(previous, policy, sleep)
    console.print(f"New screenshot created: {escape(name)}")

    await pull_artifact(name, local_path)
    deleted = await delete_artifact(name)
    return CaptureResult(
        remote_name=name,
        local_path=local_path,
        attempts=attempts,
        remote_deleted=deleted,
    )

"""ADB wrapper: prerequisite checks and device-side commands for the Quest."""

from __future__ import annotations

from dataclasses import dataclass
import shutil

from rich.markup import escape

from quest_dev.config import load_settings
from quest_dev.errors import (
    BridgeError,
    LaunchError,
    PreconditionError,
    TransientDeviceError,
)
from quest_dev.helpers.console import console, warn
from quest_dev.helpers.subprocess import (
    ExecResult,
    run,
    run_binary,
    run_full,
    run_full_sync,
)

SERVER_FAULTS = (
    "protocol fault",
    "Connection reset",
    "server version",
    "cannot connect to daemon",
)

LONG_SCREEN_TIMEOUT = 86_400_000  # 24 hours, in ms
PROX_CLOSE = "com.oculus.vrpowermanager.prox_close"
# automation_disable hands the proximity sensor back to normal behaviour
PROX_AUTOMATION_DISABLE = "com.oculus.vrpowermanager.automation_disable"


def adb_path() -> str:
    return load_settings().adb


async def adb(*args: str) -> str:
    """Run an adb command, raising ``BridgeError`` on failure."""
    return await run(adb_path(), list(args))


async def adb_full(*args: str) -> ExecResult:
    """Run an adb command and return the full result without raising."""
    return await run_full(adb_path(), list(args))


async def adb_bytes(*args: str) -> bytes:
    """Run an adb command and return raw stdout bytes."""
    return await run_binary(adb_path(), list(args))


def check_adb() -> str:
    """Verify that adb is installed and accessible.

    Returns the resolved path. Raises PreconditionError with installation
    instructions if not found.
    """
    found = shutil.which(adb_path())
    if found is None:
        raise PreconditionError(
            "ADB not found in PATH",
            [
                "Please install Android Platform Tools and add adb to your PATH:",
                "https://developer.android.com/tools/releases/platform-tools",
                "",
                "Installation instructions:",
                "- macOS: brew install android-platform-tools",
                "- Linux: sudo apt install adb (or equivalent)",
                "- Windows: Download from the link above and add to PATH",
            ],
        )
    return found


def parse_devices(output: str) -> list[tuple[str, str]]:
    """Parse ``adb devices`` output into (serial, state) pairs."""
    devices: list[tuple[str, str]] = []
    for line in output.strip().splitlines():
        line = line.strip()
        if not line or line.startswith("List of devices") or line.startswith("*"):
            continue
        parts = line.split()
        if len(parts) >= 2:
            devices.append((parts[0], parts[1]))
    return devices


async def restart_server() -> bool:
    """Restart the adb server after a protocol fault."""
    console.print("[yellow]ADB server appears to be in a bad state, restarting...[/yellow]")
    # kill-server fails when the server is already dead
    await adb_full("kill-server")
    try:
        await adb("start-server")
    except BridgeError as e:
        warn(f"Failed to restart ADB server: {e.stderr.strip()}")
        return False
    console.print("ADB server restarted successfully")
    return True


async def check_devices(*, quiet: bool = False) -> str:
    """Ensure exactly one authorized device is attached.

    Returns the device serial. A bridge server fault is retried once after
    restarting the server.
    """
    result = await adb_full("devices")
    if not result.ok and any(f in result.stderr for f in SERVER_FAULTS):
        if await restart_server():
            result = await adb_full("devices")
        if not result.ok:
            raise TransientDeviceError(
                f"Failed to list ADB devices: {result.stderr.strip()}",
                ["Try running: adb kill-server && adb start-server"],
            )
    if not result.ok:
        raise PreconditionError(
            f"Failed to list ADB devices: {result.stderr.strip()}",
            ["Try running: adb kill-server && adb start-server"],
        )

    devices = parse_devices(result.stdout)
    if not devices:
        raise PreconditionError(
            "No ADB devices connected",
            ["Please connect your Quest device via USB and enable USB debugging"],
        )
    if len(devices) > 1:
        serials = ", ".join(serial for serial, _ in devices)
        raise PreconditionError(
            f"Multiple ADB devices connected: {serials}",
            ["Disconnect all but one device and try again."],
        )

    serial, state = devices[0]
    if state == "unauthorized":
        raise PreconditionError(
            f"Device {serial} is not authorized for USB debugging",
            ["Put on the headset and accept the 'Allow USB debugging' prompt."],
        )
    if state != "device":
        raise PreconditionError(
            f"Device {serial} is {state}",
            ["Reconnect the USB cable or run: adb reconnect"],
        )

    if not quiet:
        console.print(f"Found ADB device: {escape(serial)}")
    return serial


async def check_storage_access() -> None:
    """Check that USB file transfer is authorized.

    After a reboot the user must accept the "Allow access to data" prompt
    before /sdcard can be listed.
    """
    result = await adb_full("shell", "ls", "/sdcard/")
    if (
        not result.ok
        or "Permission denied" in result.stdout
        or "Permission denied" in result.stderr
    ):
        raise PreconditionError(
            "USB file transfer not authorized on Quest",
            [
                "After rebooting your Quest, you need to authorize USB file transfers:",
                "1. Put on your Quest headset",
                '2. Look for the "Allow access to data" notification',
                '3. Click "Allow" to authorize file transfers',
            ],
        )


async def check_awake() -> None:
    """Screenshots cannot be taken while the display is off."""
    result = await adb_full("shell", "dumpsys", "power")
    if "mWakefulness=Asleep" in result.stdout:
        raise PreconditionError(
            "Quest display is off",
            ["Put on the Quest headset or press the power button to wake it."],
        )


async def is_app_running(package: str) -> bool:
    from quest_dev.device.sockets import parse_pid

    result = await adb_full("shell", "ps", "-A")
    return result.ok and parse_pid(result.stdout, package) is not None


async def launch_url(url: str, package: str) -> None:
    """Open *url* through the VIEW intent, which creates or focuses a tab."""
    console.print(f"Launching {escape(package)}...")
    try:
        await adb(
            "shell",
            "am",
            "start",
            "-a",
            "android.intent.action.VIEW",
            "-d",
            url,
            package,
        )
    except BridgeError as e:
        raise LaunchError(f"Failed to launch browser: {e.stderr.strip()}") from e
    console.print(f"Browser launched with URL: {escape(url)}")


# ---------------------------------------------------------------------------
# Screen timeout / proximity settings
# ---------------------------------------------------------------------------


async def get_screen_timeout() -> int:
    output = await adb("shell", "settings", "get", "system", "screen_off_timeout")
    try:
        return int(output.strip())
    except ValueError:
        raise PreconditionError(
            f"Unexpected screen timeout value: {output.strip()!r}"
        ) from None


async def set_screen_timeout(timeout_ms: int) -> None:
    await adb("shell", "settings", "put", "system", "screen_off_timeout", str(timeout_ms))


async def wake_screen() -> None:
    await adb("shell", "input", "keyevent", "KEYCODE_WAKEUP")


async def disable_proximity_sensor() -> None:
    """Keep the screen on even when the headset is not worn."""
    await adb("shell", "am", "broadcast", "-a", PROX_CLOSE)


def restore_settings_sync(original_timeout: int) -> bool:
    """Restore the screen timeout and proximity sensor, blocking.

    Used from signal handlers and the watchdog child. Failures are
    reported as warnings; returns True when both steps succeeded.
    """
    path = adb_path()
    steps = [
        ["shell", "settings", "put", "system", "screen_off_timeout", str(original_timeout)],
        ["shell", "am", "broadcast", "-a", PROX_AUTOMATION_DISABLE],
    ]
    ok = True
    for args in steps:
        result = run_full_sync(path, args)
        if not result.ok:
            warn(f"Failed to restore settings ({' '.join(args)}): {result.stderr.strip()}")
            ok = False
    if ok:
        console.print(
            f"Screen timeout restored to {original_timeout}ms "
            f"({round(original_timeout / 1000)}s)"
        )
        console.print("Proximity sensor re-enabled")
    return ok


# ---------------------------------------------------------------------------
# Battery
# ---------------------------------------------------------------------------

_BATTERY_STATES = {
    "1": "unknown",
    "2": "charging",
    "3": "discharging",
    "4": "not charging",
    "5": "full",
}


@dataclass
class BatteryStatus:
    level: int
    state: str
    power_source: str | None = None

    def describe(self) -> str:
        text = f"{self.level}% ({self.state})"
        if self.power_source:
            text += f", {self.power_source} powered"
        return text


def parse_battery(output: str) -> BatteryStatus:
    """Parse ``dumpsys battery`` key: value lines.

    Unknown or missing fields fall back to conservative defaults.
    """
    fields: dict[str, str] = {}
    for line in output.splitlines():
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        fields[key.strip()] = value.strip()

    try:
        level = int(fields.get("level", "0"))
        scale = int(fields.get("scale", "100")) or 100
    except ValueError:
        level, scale = 0, 100
    if scale != 100:
        level = round(level * 100 / scale)

    source = None
    for name in ("AC", "USB", "Wireless", "Dock"):
        if fields.get(f"{name} powered") == "true":
            source = name
            break

    return BatteryStatus(
        level=level,
        state=_BATTERY_STATES.get(fields.get("status", ""), "unknown"),
        power_source=source,
    )


async def get_battery_status() -> BatteryStatus:
    return parse_battery(await adb("shell", "dumpsys", "battery"))

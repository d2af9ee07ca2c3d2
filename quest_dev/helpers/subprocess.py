"""Process runner for the device bridge and peer tools.

Two modes, mirroring how callers treat failures:

- ``run`` returns stdout and raises ``BridgeError`` on a non-zero exit.
- ``run_full`` never raises; spawn failures come back as exit code 1 with
  the error message as stderr.

Every device interaction goes through one of these (or their binary /
synchronous variants), so tests only need to fake ``_exec``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import subprocess

from quest_dev.errors import BridgeError

DEFAULT_TIMEOUT = 120


@dataclass
class ExecResult:
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


async def _exec(
    command: str, args: list[str], timeout: float = DEFAULT_TIMEOUT
) -> tuple[int, bytes, bytes]:
    """Spawn *command* with *args* and collect (exit code, stdout, stderr)."""
    proc = await asyncio.create_subprocess_exec(
        command,
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return 1, b"", f"timed out after {timeout}s".encode()
    return proc.returncode if proc.returncode is not None else 1, stdout, stderr


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


async def run_full(
    command: str, args: list[str], *, timeout: float = DEFAULT_TIMEOUT
) -> ExecResult:
    """Run a command and return its full result without raising."""
    try:
        code, stdout, stderr = await _exec(command, args, timeout)
    except OSError as e:
        return ExecResult(stdout="", stderr=str(e), exit_code=1)
    return ExecResult(stdout=_decode(stdout), stderr=_decode(stderr), exit_code=code)


async def run(
    command: str, args: list[str], *, timeout: float = DEFAULT_TIMEOUT
) -> str:
    """Run a command and return stdout.

    Raises:
        BridgeError: If the process exits non-zero or cannot be spawned.
    """
    result = await run_full(command, args, timeout=timeout)
    if not result.ok:
        raise BridgeError([command, *args], result.exit_code, result.stderr)
    return result.stdout


async def run_binary(
    command: str, args: list[str], *, timeout: float = DEFAULT_TIMEOUT
) -> bytes:
    """Run a command and return raw stdout bytes, raising on failure."""
    try:
        code, stdout, stderr = await _exec(command, args, timeout)
    except OSError as e:
        raise BridgeError([command, *args], 1, str(e)) from e
    if code != 0:
        raise BridgeError([command, *args], code, _decode(stderr))
    return stdout


def run_full_sync(
    command: str, args: list[str], *, timeout: float = 10
) -> ExecResult:
    """Blocking ``run_full`` for signal handlers and the watchdog child."""
    try:
        result = subprocess.run(
            [command, *args], capture_output=True, text=True, timeout=timeout
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        return ExecResult(stdout="", stderr=str(e), exit_code=1)
    return ExecResult(
        stdout=result.stdout or "",
        stderr=result.stderr or "",
        exit_code=result.returncode,
    )

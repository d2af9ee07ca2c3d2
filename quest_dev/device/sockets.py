"""Remote debugging socket resolution for a browser package.

The browser listens on a PID-scoped abstract socket
(``chrome_devtools_remote_<pid>``) while it warm-starts and moves to the
generic ``chrome_devtools_remote`` once settled, so the name is looked up
fresh on every invocation rather than hardcoded.

Device shell output is treated as an untyped text protocol: the parsers
here fail closed by returning ``None``/``False`` on anything they do not
recognise.
"""

from __future__ import annotations

from dataclasses import dataclass

from quest_dev.device.adb import adb_full

GENERIC_SOCKET = "chrome_devtools_remote"
PID_SOCKET_PORT = 9222
GENERIC_SOCKET_PORT = 9223

# Lines produced by the listing pipeline itself, not by the target app
_LISTING_ARTIFACTS = ("grep", " ps ")


@dataclass(frozen=True)
class SocketDescriptor:
    socket_name: str
    port: int


DEFAULT_SOCKET = SocketDescriptor(GENERIC_SOCKET, GENERIC_SOCKET_PORT)


def parse_pid(ps_output: str, package: str) -> int | None:
    """Find the pid of *package* in ``ps -A`` output.

    Columns are ``USER PID PPID VSZ RSS WCHAN ADDR S NAME``; the pid is the
    second column and the command name the last. An exact name match wins
    over a sub-process such as ``<package>:privileged_process0``.
    """
    candidates: list[tuple[str, int]] = []
    for line in ps_output.splitlines():
        if any(artifact in f" {line} " for artifact in _LISTING_ARTIFACTS):
            continue
        columns = line.split()
        if len(columns) < 2 or package not in columns[-1]:
            continue
        if columns[1].isdigit():
            candidates.append((columns[-1], int(columns[1])))

    for name, pid in candidates:
        if name == package:
            return pid
    return candidates[0][1] if candidates else None


def has_abstract_socket(unix_table: str, name: str) -> bool:
    """Check ``/proc/net/unix`` for an abstract socket named exactly *name*."""
    target = f"@{name}"
    for line in unix_table.splitlines():
        columns = line.split()
        if columns and columns[-1] == target:
            return True
    return False


def pid_socket_name(pid: int) -> str:
    return f"{GENERIC_SOCKET}_{pid}"


async def resolve_socket(package: str) -> SocketDescriptor:
    """Resolve the active debugging socket for *package*.

    Never raises: any lookup failure falls back to the generic socket.
    """
    ps = await adb_full("shell", "ps", "-A")
    if not ps.ok:
        return DEFAULT_SOCKET
    pid = parse_pid(ps.stdout, package)
    if pid is None:
        return DEFAULT_SOCKET

    table = await adb_full("shell", "cat", "/proc/net/unix")
    name = pid_socket_name(pid)
    if table.ok and has_abstract_socket(table.stdout, name):
        return SocketDescriptor(name, PID_SOCKET_PORT)
    return DEFAULT_SOCKET

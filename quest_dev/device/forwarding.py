"""Idempotent ADB port forwarding.

Two tunnels are involved when opening a page on the headset:

- reverse ``tcp:P -> tcp:P`` so the headset reaches a dev server on the host;
- forward ``tcp:P -> localabstract:<socket>`` so the host reaches the
  browser's remote debugging socket.

Live rule listings are re-read before every mutation, which makes repeated
invocations no-ops. Rules are never removed here; they persist across runs.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Literal
from urllib.parse import urlsplit

from rich.markup import escape

from quest_dev.device.adb import adb
from quest_dev.errors import PortConflict, QuestDevError
from quest_dev.helpers.console import console

PROBE_TIMEOUT = 0.5
LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})
DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class ForwardingRule:
    direction: Literal["reverse", "forward"]
    local: str
    remote: str

    def args(self) -> list[str]:
        return [self.direction, self.local, self.remote]


@dataclass(frozen=True)
class UrlTarget:
    url: str
    is_local: bool
    port: int | None


def ports_for_url(url: str) -> UrlTarget:
    """Work out which tunnels *url* needs.

    Loopback URLs need a reverse rule for the dev server port (explicit port,
    else the scheme default); external URLs only need the debugging forward,
    so their port may be None (e.g. chrome://flags).
    """
    try:
        parts = urlsplit(url)
        explicit_port = parts.port
    except ValueError as e:
        raise QuestDevError(f"Invalid URL: {url}", [str(e)]) from None
    host = (parts.hostname or "").lower()
    scheme = parts.scheme.lower()
    if not scheme or (scheme in DEFAULT_PORTS and not host):
        raise QuestDevError(
            f"Invalid URL: {url}",
            ["Pass a full URL, e.g. http://localhost:3000/"],
        )

    is_local = host in LOOPBACK_HOSTS or host.endswith(".localhost")
    port = explicit_port or DEFAULT_PORTS.get(scheme)
    if is_local and port is None:
        raise QuestDevError(f"Could not determine port for URL: {url}")
    return UrlTarget(url=url, is_local=is_local, port=port)


async def is_port_listening(port: int, timeout: float = PROBE_TIMEOUT) -> bool:
    """Check whether anything accepts TCP connections on 127.0.0.1:*port*."""
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection("127.0.0.1", port), timeout=timeout
        )
    except (OSError, asyncio.TimeoutError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


def _listing_has(listing: str, *endpoints: str) -> bool:
    """Match endpoints as whole tokens so tcp:80 does not match tcp:8080."""
    for line in listing.splitlines():
        tokens = line.split()
        if all(endpoint in tokens for endpoint in endpoints):
            return True
    return False


async def ensure_reverse(port: int) -> bool:
    """Make the host's *port* reachable from the headset.

    Returns True when a rule was created, False when it already existed.
    """
    rule = ForwardingRule("reverse", f"tcp:{port}", f"tcp:{port}")
    listing = await adb("reverse", "--list")
    if _listing_has(listing, rule.local):
        console.print(
            f"ADB reverse port forwarding already configured: Quest:{port} -> Host:{port}"
        )
        return False

    await adb(*rule.args())
    console.print(f"ADB reverse port forwarding set up: Quest:{port} -> Host:{port}")
    return True


async def ensure_forward(socket_name: str, port: int) -> bool:
    """Forward host *port* to the headset's abstract *socket_name*.

    Raises:
        PortConflict: If a process other than adb already listens on *port*.
    """
    rule = ForwardingRule("forward", f"tcp:{port}", f"localabstract:{socket_name}")
    listing = await adb("forward", "--list")
    if _listing_has(listing, rule.local, rule.remote):
        console.print(f"CDP port {port} forwarding already configured")
        return False

    # adb itself holds the port for an older socket (e.g. a previous
    # browser pid); re-pointing the rule replaces it in place.
    owned_by_adb = _listing_has(listing, rule.local)
    if not owned_by_adb and await is_port_listening(port):
        raise PortConflict(port)

    await adb(*rule.args())
    console.print(
        f"ADB forward port forwarding set up: Host:{port} -> "
        f"Quest:{escape(socket_name)} (CDP)"
    )
    return True

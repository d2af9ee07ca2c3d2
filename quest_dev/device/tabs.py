"""Browser tab reuse through the cdp-cli remote debugging peer.

The peer is optional: if it is missing or errors, tab reuse is simply
skipped and the URL is opened with a VIEW intent instead.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, Field, ValidationError
from rich.markup import escape

from quest_dev.config import load_settings
from quest_dev.device.adb import launch_url
from quest_dev.helpers.console import console
from quest_dev.helpers.subprocess import ExecResult, run_full

BLANK_URLS = frozenset(
    {
        "about:blank",
        "chrome://newtab/",
        "chrome://panel-app-nav/ntp",  # Quest new tab page
        "",
    }
)


class BrowserTab(BaseModel):
    id: str = Field(min_length=1)
    url: str
    title: str = ""


class TabOutcome(str, enum.Enum):
    RELOADED = "reloaded"
    NAVIGATED = "navigated"
    LAUNCHED = "launched"


def parse_tabs(output: str) -> list[BrowserTab]:
    """Parse NDJSON tab records, skipping log lines and malformed records."""
    tabs: list[BrowserTab] = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            tabs.append(BrowserTab.model_validate_json(line))
        except ValidationError:
            continue
    return tabs


def find_exact(tabs: list[BrowserTab], url: str) -> BrowserTab | None:
    return next((t for t in tabs if t.url == url), None)


def find_blank(tabs: list[BrowserTab]) -> BrowserTab | None:
    return next((t for t in tabs if t.url in BLANK_URLS), None)


async def _peer(port: int, *args: str) -> ExecResult:
    return await run_full(
        load_settings().cdp_cli, ["--cdp-url", f"http://localhost:{port}", *args]
    )


async def list_tabs(port: int) -> list[BrowserTab] | None:
    """Open tabs, or None when the peer is unavailable."""
    result = await _peer(port, "tabs")
    if not result.ok:
        return None
    return parse_tabs(result.stdout)


async def reuse_tab(tabs: list[BrowserTab], target_url: str, port: int) -> TabOutcome | None:
    """Reload an exact match, else navigate a blank tab. None if neither worked."""
    existing = find_exact(tabs, target_url)
    if existing is not None:
        console.print(f"Found existing tab with URL: {escape(target_url)}")
        if (await _peer(port, "go", existing.id, "reload")).ok:
            console.print("Reloaded existing tab")
            return TabOutcome.RELOADED

    blank = find_blank(tabs)
    if blank is not None:
        console.print("Found blank tab, navigating it...")
        if (await _peer(port, "go", blank.id, target_url)).ok:
            console.print("Navigated blank tab to URL")
            return TabOutcome.NAVIGATED

    return None


async def reuse_or_launch(target_url: str, *, port: int, package: str) -> TabOutcome:
    """Show *target_url* in the headset browser, reusing a tab when possible."""
    tabs = await list_tabs(port)
    if tabs is None:
        console.print("cdp-cli tabs command failed, will launch browser directly")
    else:
        outcome = await reuse_tab(tabs, target_url, port)
        if outcome is not None:
            return outcome
        console.print("No existing or blank tab found, opening URL...")

    await launch_url(target_url, package)
    return TabOutcome.LAUNCHED


async def close_other_tabs(target_url: str, *, port: int) -> int:
    """Close every tab except the one ``reuse_or_launch`` would pick.

    Best effort: returns the number of tabs actually closed.
    """
    tabs = await list_tabs(port)
    if not tabs:
        return 0
    keep = find_exact(tabs, target_url) or find_blank(tabs)
    closed = 0
    for tab in tabs:
        if keep is not None and tab.id == keep.id:
            continue
        if (await _peer(port, "close", tab.id)).ok:
            closed += 1
    if closed:
        console.print(f"Closed {closed} other tab(s)")
    return closed

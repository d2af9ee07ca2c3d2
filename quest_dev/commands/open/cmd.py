"""CLI command for opening URLs in the Quest browser."""

from __future__ import annotations

import asyncio

import click
from rich.markup import escape

from quest_dev.helpers.console import console


async def open_url(url: str, *, close_others: bool, browser: str) -> str:
    """Set up forwarding for *url*, then show it in *browser*.

    Returns how the page ended up on screen (reloaded, navigated, launched).
    """
    from quest_dev.device.adb import check_adb, check_devices, is_app_running, launch_url
    from quest_dev.device.forwarding import ensure_forward, ensure_reverse, ports_for_url
    from quest_dev.device.sockets import resolve_socket
    from quest_dev.device.tabs import TabOutcome, close_other_tabs, reuse_or_launch

    target = ports_for_url(url)

    check_adb()
    await check_devices()

    descriptor = await resolve_socket(browser)
    if target.is_local:
        await ensure_reverse(target.port)
    await ensure_forward(descriptor.socket_name, descriptor.port)

    if not await is_app_running(browser):
        console.print("Quest browser is not running")
        await launch_url(url, browser)
        return TabOutcome.LAUNCHED.value

    console.print("Quest browser is already running")
    if close_others:
        await close_other_tabs(url, port=descriptor.port)
    outcome = await reuse_or_launch(url, port=descriptor.port, package=browser)
    return outcome.value


@click.command("open")
@click.argument("url")
@click.option(
    "--close-others",
    is_flag=True,
    default=False,
    help="Close all other tabs before opening",
)
@click.option(
    "--browser",
    default=None,
    help="Browser package name (default: com.oculus.browser)",
)
def open_cmd(url: str, close_others: bool, browser: str | None) -> None:
    """Open URL in the Quest browser, with port forwarding.

    localhost URLs also get reverse forwarding so the headset can reach
    your dev server.
    """
    from quest_dev.config import load_settings

    package = browser or load_settings().browser
    console.print(f"\n[bold]Opening {escape(url)} on Quest...[/bold]\n")
    asyncio.run(open_url(url, close_others=close_others, browser=package))
    console.print("\n[green]Done![/green]\n")

"""CLI command for reporting the headset battery."""

from __future__ import annotations

import asyncio

import click

from quest_dev.helpers.console import console


async def battery_status() -> str:
    from quest_dev.device.adb import check_adb, check_devices, get_battery_status

    check_adb()
    await check_devices(quiet=True)
    status = await get_battery_status()
    return status.describe()


@click.command()
def battery() -> None:
    """Show battery percentage and charging status."""
    console.print(asyncio.run(battery_status()))

"""CLI entry point for quest-dev."""

from __future__ import annotations

from typing import Any

import click
from dotenv import load_dotenv

from quest_dev.commands.battery.cmd import battery
from quest_dev.commands.logcat.cmd import logcat
from quest_dev.commands.open.cmd import open_cmd
from quest_dev.commands.screenshot.cmd import screenshot
from quest_dev.commands.stay_awake.cmd import stay_awake, stay_awake_watchdog
from quest_dev.errors import QuestDevError
from quest_dev.helpers.console import print_error

load_dotenv()


class QuestDevGroup(click.Group):
    """Click group that turns ``QuestDevError`` into a diagnostic and exit 1."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except QuestDevError as e:
            print_error(e)
            ctx.exit(1)


@click.group(
    cls=QuestDevGroup,
    epilog="Requires ADB and a Quest connected via USB. "
    "Sets up CDP forwarding for cdp-cli.",
)
@click.version_option(version="0.1.0", prog_name="quest-dev")
def cli() -> None:
    """Command-line tools for Meta Quest Browser development."""


cli.add_command(screenshot)
cli.add_command(open_cmd)
cli.add_command(logcat)
cli.add_command(battery)
cli.add_command(stay_awake)
cli.add_command(stay_awake_watchdog)


if __name__ == "__main__":
    cli()

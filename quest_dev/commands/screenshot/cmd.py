"""CLI command for capturing Quest screenshots."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
from rich.markup import escape

from quest_dev.errors import QuestDevError
from quest_dev.helpers.console import console

JPEG_SUFFIXES = (".jpg", ".jpeg")


def resolve_output(output: str) -> Path:
    """Map the OUTPUT argument to the local file to write.

    A path ending in .jpg/.jpeg is the file itself; anything else is a
    directory that receives a timestamped filename.
    """
    from quest_dev.helpers.filename import screenshot_filename

    path = Path(output).expanduser().resolve()
    is_file = path.suffix.lower() in JPEG_SUFFIXES
    directory = path.parent if is_file else path
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise QuestDevError(
            f"Cannot use output path: {output}",
            [str(e), "OUTPUT must be a directory or a path ending in .jpg"],
        ) from e
    return path if is_file else path / screenshot_filename()


async def take_screenshot(output: str, caption: str | None) -> Path:
    from quest_dev.device.adb import (
        check_adb,
        check_awake,
        check_devices,
        check_storage_access,
    )
    from quest_dev.device.capture import capture_screenshot
    from quest_dev.helpers.jpeg import add_comment

    check_adb()
    await check_devices()
    await check_storage_access()
    await check_awake()

    local_path = resolve_output(output)
    result = await capture_screenshot(local_path)

    if caption:
        add_comment(result.local_path, caption)
        console.print(f"Caption added: {escape(caption)}")
    return result.local_path


@click.command()
@click.argument("output")
@click.option("--caption", default=None, help="Caption stored in the JPEG comment")
def screenshot(output: str, caption: str | None) -> None:
    """Take a screenshot on the Quest and save it locally.

    OUTPUT is a directory (a timestamped filename is generated) or a
    path ending in .jpg.
    """
    console.print("\n[bold]Quest Screenshot[/bold]\n")
    asyncio.run(take_screenshot(output, caption))
    console.print("\n[green]Done![/green]\n")

"""Minimal JPEG comment (COM segment) writer for screenshot captions."""

from __future__ import annotations

from pathlib import Path
import struct

from quest_dev.errors import QuestDevError

SOI = b"\xff\xd8"
COM = b"\xff\xfe"
MAX_COMMENT = 0xFFFF - 2


class JpegError(QuestDevError):
    """Raised when a file is not a JPEG we can annotate."""


def add_comment(path: Path, text: str) -> None:
    """Insert *text* as a COM segment right after the SOI marker."""
    data = path.read_bytes()
    if not data.startswith(SOI):
        raise JpegError(f"Not a JPEG file: {path}")
    payload = text.encode("utf-8")[:MAX_COMMENT]
    segment = COM + struct.pack(">H", len(payload) + 2) + payload
    path.write_bytes(SOI + segment + data[len(SOI) :])


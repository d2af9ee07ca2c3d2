"""Screenshot filename generation."""

from __future__ import annotations

from datetime import datetime, timezone


def screenshot_filename(when: datetime | None = None) -> str:
    """Return ``screenshot-YYYY-MM-DD-HH-MM-SS-Z.jpg`` for a UTC instant.

    Naive datetimes are taken to be UTC already; aware ones are converted.
    """
    if when is None:
        when = datetime.now(timezone.utc)
    elif when.tzinfo is not None:
        when = when.astimezone(timezone.utc)
    return (
        f"screenshot-{when.year:04d}-{when.month:02d}-{when.day:02d}-"
        f"{when.hour:02d}-{when.minute:02d}-{when.second:02d}-Z.jpg"
    )

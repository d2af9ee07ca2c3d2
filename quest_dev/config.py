"""Runtime configuration read from the environment (and ``.env``)."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

DEFAULT_BROWSER = "com.oculus.browser"


@dataclass(frozen=True)
class Settings:
    adb: str
    cdp_cli: str
    log_dir: Path
    stay_awake_pid_file: Path
    browser: str


def load_settings() -> Settings:
    """Build settings from environment variables, applying defaults."""
    pid_file = os.environ.get("QUEST_DEV_STAY_AWAKE_PID")
    return Settings(
        adb=os.environ.get("QUEST_DEV_ADB", "adb"),
        cdp_cli=os.environ.get("QUEST_DEV_CDP_CLI", "cdp-cli"),
        log_dir=Path(os.environ.get("LOG_DIR", "logs/logcat")),
        stay_awake_pid_file=(
            Path(pid_file)
            if pid_file
            else Path.home() / ".quest-dev-stay-awake.pid"
        ),
        browser=os.environ.get("QUEST_DEV_BROWSER", DEFAULT_BROWSER),
    )

"""Exception hierarchy for quest-dev.

Every fatal condition is a ``QuestDevError``. The CLI group catches it at the
boundary and prints ``message`` followed by the remediation ``hints``.
"""

from __future__ import annotations


class QuestDevError(Exception):
    """Base class for fatal, user-facing errors."""

    def __init__(self, message: str, hints: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hints = hints or []


class PreconditionError(QuestDevError):
    """Bridge missing, no device attached, storage locked, display asleep."""


class BridgeError(QuestDevError):
    """A bridge (or peer) command exited with a non-zero code."""

    def __init__(self, command: list[str], exit_code: int, stderr: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"{' '.join(command)} failed (exit {exit_code}): {stderr.strip()}"
        )


class TransientDeviceError(QuestDevError):
    """The bridge server kept faulting after a restart."""


class PortConflict(QuestDevError):
    """A host port needed for forwarding is held by another process."""

    def __init__(self, port: int) -> None:
        self.port = port
        super().__init__(
            f"Port {port} is already in use by another process",
            [
                f"Remote debugging forwarding requires port {port} to be free.",
                "Stop the process using this port and try again.",
                "",
                "To find what is using the port:",
                f"  lsof -i :{port}",
            ],
        )


class ArtifactTimeout(QuestDevError):
    """No verified screenshot appeared within the poll budget."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(
            "Screenshot was not created",
            [
                f"The screenshot service was triggered but no complete screenshot "
                f"appeared after {attempts} checks.",
                "This can happen if:",
                "- The Quest is asleep or the screen is off",
                "- The Quest is showing a system dialog",
                "- There is insufficient storage space",
            ],
        )


class AlreadyRunning(QuestDevError):
    """A live process already holds the session PID file."""

    def __init__(self, what: str, pid: int) -> None:
        self.pid = pid
        super().__init__(f"{what} is already running (PID: {pid})")


class LaunchError(QuestDevError):
    """The browser VIEW intent could not be started."""

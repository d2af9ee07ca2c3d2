"""Shared test fixtures for quest-dev tests."""

from __future__ import annotations

from collections import deque

import pytest


class FakeBridge:
    """Scripted stand-in for ``quest_dev.helpers.subprocess._exec``.

    Responses are registered against an argv prefix; the longest matching
    prefix wins. Several responses for one prefix are served in order, and
    the last one repeats. Unmatched commands succeed with empty output.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self._responses: dict[tuple[str, ...], deque[tuple[int, bytes, bytes]]] = {}

    def on(
        self,
        *prefix: str,
        stdout: str | bytes = b"",
        stderr: str | bytes = b"",
        code: int = 0,
    ) -> FakeBridge:
        out = stdout.encode() if isinstance(stdout, str) else stdout
        err = stderr.encode() if isinstance(stderr, str) else stderr
        self._responses.setdefault(tuple(prefix), deque()).append((code, out, err))
        return self

    def calls_to(self, *prefix: str) -> list[list[str]]:
        return [c for c in self.calls if tuple(c[: len(prefix)]) == prefix]

    async def __call__(
        self, command: str, args: list[str], timeout: float | None = None
    ) -> tuple[int, bytes, bytes]:
        argv = [command, *args]
        self.calls.append(argv)
        best: tuple[str, ...] | None = None
        for prefix in self._responses:
            if tuple(argv[: len(prefix)]) == prefix and (
                best is None or len(prefix) > len(best)
            ):
                best = prefix
        if best is None:
            return 0, b"", b""
        queue = self._responses[best]
        return queue.popleft() if len(queue) > 1 else queue[0]


@pytest.fixture
def bridge(monkeypatch: pytest.MonkeyPatch) -> FakeBridge:
    """Fake device bridge: every adb/cdp-cli call goes through it."""
    fake = FakeBridge()
    monkeypatch.setattr("quest_dev.helpers.subprocess._exec", fake)
    monkeypatch.setenv("QUEST_DEV_ADB", "adb")
    monkeypatch.setenv("QUEST_DEV_CDP_CLI", "cdp-cli")
    return fake


@pytest.fixture
def adb_on_path(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("shutil.which", lambda name: f"/usr/bin/{name}")


@pytest.fixture
def one_device(bridge: FakeBridge) -> FakeBridge:
    bridge.on("adb", "devices", stdout="List of devices attached\n1WMHH000000000\tdevice\n\n")
    return bridge


PS_OUTPUT = """\
USER           PID  PPID     VSZ    RSS WCHAN            ADDR S NAME
root             1     0 2249200   4540 0                   0 S init
u0_a91        4321   812 5512344 301220 0                   0 S com.oculus.browser
u0_a91        4388   812 4412344 101220 0                   0 S com.oculus.browser:privileged_process0
shell         9999  9990 2120000   3000 0                   0 R ps
"""

UNIX_TABLE = """\
Num       RefCount Protocol Flags    Type St Inode Path
0000000000000000: 00000002 00000000 00010000 0001 01 48211 @chrome_devtools_remote_4321
0000000000000000: 00000002 00000000 00010000 0001 01 48212 /dev/socket/logd
"""

"""Tests for the stay-awake session and its watchdog."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from quest_dev.commands.stay_awake.cmd import StayAwakeSession, start_session
from quest_dev.commands.stay_awake.watchdog import (
    CleanupLatch,
    restore_once,
    watch_parent,
)
from quest_dev.errors import AlreadyRunning, BridgeError
from quest_dev.session.lease import PidLease, read_pid
from tests.conftest import FakeBridge

RESTORE = "quest_dev.commands.stay_awake.watchdog.restore_settings_sync"
SPAWN = "quest_dev.commands.stay_awake.watchdog.spawn_watchdog"


@pytest.fixture
def pid_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "stay-awake.pid"
    monkeypatch.setenv("QUEST_DEV_STAY_AWAKE_PID", str(path))
    return path


class TestCleanupLatch:
    def test_lets_one_caller_through(self) -> None:
        latch = CleanupLatch()
        assert latch.acquire() is True
        assert latch.acquire() is False
        assert latch.fired is True


class TestRestoreOnce:
    def test_restores_once_and_drops_own_pid_file(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "p.pid"
        pid_file.write_text("111")
        latch = CleanupLatch()
        with patch(RESTORE) as restore:
            assert restore_once(latch, 30000, pid_file, 111) is True
            assert restore_once(latch, 30000, pid_file, 111) is False
        restore.assert_called_once_with(30000)
        assert not pid_file.exists()

    def test_settings_restored_before_pid_file_removed(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "p.pid"
        pid_file.write_text("111")
        seen: list[bool] = []

        with patch(RESTORE, side_effect=lambda timeout: seen.append(pid_file.exists())):
            restore_once(CleanupLatch(), 30000, pid_file, 111)

        assert seen == [True]
        assert not pid_file.exists()

    def test_leaves_newer_session_pid_file(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "p.pid"
        pid_file.write_text("222")
        with patch(RESTORE):
            restore_once(CleanupLatch(), 30000, pid_file, 111)
        assert read_pid(pid_file) == 222


class TestWatchParent:
    def test_restores_after_parent_dies(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "p.pid"
        pid_file.write_text("555")
        alive = iter([True, True, False])
        sleeps: list[float] = []

        with patch(RESTORE) as restore:
            watch_parent(
                555,
                15000,
                pid_file,
                interval=5.0,
                sleep=sleeps.append,
                is_alive=lambda pid: next(alive),
            )

        assert sleeps == [5.0, 5.0]
        restore.assert_called_once_with(15000)
        assert not pid_file.exists()


class TestStayAwakeSession:
    def test_cleanup_runs_once(self, tmp_path: Path) -> None:
        lease = PidLease.try_acquire(tmp_path / "p.pid", os.getpid())
        session = StayAwakeSession(lease, 30000, 300_000)
        session.watchdog = MagicMock()

        with patch(RESTORE) as restore:
            session.cleanup("Received SIGINT.")
            session.cleanup("Received SIGTERM.")

        restore.assert_called_once_with(30000)
        session.watchdog.terminate.assert_called_once()
        assert not lease.path.exists()

    @pytest.mark.asyncio
    async def test_idle_timeout_triggers_cleanup(self, tmp_path: Path) -> None:
        lease = PidLease.try_acquire(tmp_path / "p.pid", os.getpid())
        session = StayAwakeSession(lease, 30000, 10)

        with patch(RESTORE) as restore:
            await session.wait()

        restore.assert_called_once_with(30000)
        assert session.latch.fired


class TestStartSession:
    @pytest.mark.asyncio
    async def test_applies_long_timeout_and_spawns_watchdog(
        self, one_device: FakeBridge, adb_on_path: None, pid_file: Path
    ) -> None:
        one_device.on("adb", "shell", "settings", "get", stdout="30000\n")

        with patch(SPAWN) as spawn:
            session = await start_session(300_000)

        assert read_pid(pid_file) == os.getpid()
        assert session.original_timeout == 30000
        spawn.assert_called_once_with(os.getpid(), 30000)
        assert one_device.calls_to("adb", "shell", "settings", "put") == [
            ["adb", "shell", "settings", "put", "system", "screen_off_timeout", "86400000"]
        ]
        assert one_device.calls_to("adb", "shell", "am", "broadcast") == [
            ["adb", "shell", "am", "broadcast", "-a", "com.oculus.vrpowermanager.prox_close"]
        ]

        with patch(RESTORE):
            session.cleanup("done")
        assert not pid_file.exists()

    @pytest.mark.asyncio
    async def test_refuses_when_already_running(
        self, one_device: FakeBridge, adb_on_path: None, pid_file: Path
    ) -> None:
        pid_file.write_text(str(os.getpid()))

        with pytest.raises(AlreadyRunning, match="already running"):
            await start_session(300_000)
        assert one_device.calls_to("adb", "shell", "settings") == []

    @pytest.mark.asyncio
    async def test_set_timeout_failure_restores(
        self, one_device: FakeBridge, adb_on_path: None, pid_file: Path
    ) -> None:
        one_device.on("adb", "shell", "settings", "get", stdout="30000\n")
        one_device.on("adb", "shell", "settings", "put", code=1, stderr="denied")

        with patch(RESTORE) as restore, patch(SPAWN) as spawn:
            with pytest.raises(BridgeError):
                await start_session(300_000)

        restore.assert_called_once_with(30000)
        spawn.return_value.terminate.assert_called_once()
        assert not pid_file.exists()

    @pytest.mark.asyncio
    async def test_watchdog_spawned_before_device_settings_change(
        self, one_device: FakeBridge, adb_on_path: None, pid_file: Path
    ) -> None:
        one_device.on("adb", "shell", "settings", "get", stdout="30000\n")
        calls_at_spawn: list[list[str]] = []

        with patch(SPAWN, side_effect=lambda *a: calls_at_spawn.extend(one_device.calls)):
            session = await start_session(300_000)

        assert calls_at_spawn
        changed = [c for c in calls_at_spawn if c[1:3] in (["shell", "input"], ["shell", "am"])]
        assert changed == []
        assert ["shell", "settings", "put"] not in [c[1:4] for c in calls_at_spawn]
        with patch(RESTORE):
            session.cleanup("done")

    @pytest.mark.asyncio
    async def test_wake_failure_is_only_a_warning(
        self, one_device: FakeBridge, adb_on_path: None, pid_file: Path
    ) -> None:
        one_device.on("adb", "shell", "settings", "get", stdout="30000\n")
        one_device.on("adb", "shell", "input", code=1, stderr="error")

        with patch(SPAWN):
            session = await start_session(300_000)
        assert session.original_timeout == 30000
        with patch(RESTORE):
            session.cleanup("done")

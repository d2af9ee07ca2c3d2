"""Tests for idempotent port forwarding."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from quest_dev.device.forwarding import (
    ensure_forward,
    ensure_reverse,
    is_port_listening,
    ports_for_url,
)
from quest_dev.errors import PortConflict, QuestDevError
from tests.conftest import FakeBridge


class TestPortsForUrl:
    def test_localhost_with_port(self) -> None:
        target = ports_for_url("http://localhost:3000/app")
        assert target.is_local is True
        assert target.port == 3000

    def test_loopback_ip_defaults_to_http_port(self) -> None:
        target = ports_for_url("http://127.0.0.1/")
        assert target.is_local is True
        assert target.port == 80

    def test_ipv6_loopback_https(self) -> None:
        target = ports_for_url("https://[::1]/")
        assert target.is_local is True
        assert target.port == 443

    def test_external_url(self) -> None:
        target = ports_for_url("https://example.com/page")
        assert target.is_local is False
        assert target.port == 443

    @pytest.mark.parametrize("url", ["chrome://flags", "about:blank"])
    def test_external_url_without_port(self, url: str) -> None:
        target = ports_for_url(url)
        assert target.is_local is False
        assert target.port is None

    def test_local_url_needs_a_port(self) -> None:
        with pytest.raises(QuestDevError, match="Could not determine port"):
            ports_for_url("ftp://localhost/")

    def test_http_url_needs_a_host(self) -> None:
        with pytest.raises(QuestDevError, match="Invalid URL"):
            ports_for_url("http:///path")

    def test_invalid_url(self) -> None:
        with pytest.raises(QuestDevError, match="Invalid URL"):
            ports_for_url("not a url")

    def test_invalid_port(self) -> None:
        with pytest.raises(QuestDevError, match="Invalid URL"):
            ports_for_url("http://localhost:99999/")


class TestEnsureReverse:
    @pytest.mark.asyncio
    async def test_existing_rule_is_not_touched(self, bridge: FakeBridge, capsys) -> None:
        bridge.on("adb", "reverse", "--list", stdout="UsbFfs tcp:3000 tcp:3000\n")

        assert await ensure_reverse(3000) is False
        assert bridge.calls == [["adb", "reverse", "--list"]]
        assert "already configured" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_missing_rule_is_created_once(self, bridge: FakeBridge) -> None:
        bridge.on("adb", "reverse", "--list", stdout="")
        bridge.on("adb", "reverse", "--list", stdout="UsbFfs tcp:3000 tcp:3000\n")

        assert await ensure_reverse(3000) is True
        assert await ensure_reverse(3000) is False
        assert bridge.calls_to("adb", "reverse", "tcp:3000") == [
            ["adb", "reverse", "tcp:3000", "tcp:3000"]
        ]

    @pytest.mark.asyncio
    async def test_port_prefix_is_not_a_match(self, bridge: FakeBridge) -> None:
        bridge.on("adb", "reverse", "--list", stdout="UsbFfs tcp:8080 tcp:8080\n")
        assert await ensure_reverse(80) is True


class TestEnsureForward:
    @pytest.mark.asyncio
    async def test_existing_rule_is_not_touched(self, bridge: FakeBridge) -> None:
        bridge.on(
            "adb", "forward", "--list",
            stdout="1WMHH tcp:9223 localabstract:chrome_devtools_remote\n",
        )
        with patch("quest_dev.device.forwarding.is_port_listening", AsyncMock()) as probe:
            assert await ensure_forward("chrome_devtools_remote", 9223) is False
        probe.assert_not_called()
        assert bridge.calls == [["adb", "forward", "--list"]]

    @pytest.mark.asyncio
    async def test_creates_rule_when_port_free(self, bridge: FakeBridge) -> None:
        with patch(
            "quest_dev.device.forwarding.is_port_listening", AsyncMock(return_value=False)
        ):
            assert await ensure_forward("chrome_devtools_remote", 9223) is True
        assert bridge.calls_to("adb", "forward", "tcp:9223") == [
            ["adb", "forward", "tcp:9223", "localabstract:chrome_devtools_remote"]
        ]

    @pytest.mark.asyncio
    async def test_foreign_listener_is_a_conflict(self, bridge: FakeBridge) -> None:
        with patch(
            "quest_dev.device.forwarding.is_port_listening", AsyncMock(return_value=True)
        ):
            with pytest.raises(PortConflict) as exc:
                await ensure_forward("chrome_devtools_remote", 9223)
        assert exc.value.port == 9223
        assert any("lsof -i :9223" in h for h in exc.value.hints)
        assert bridge.calls_to("adb", "forward", "tcp:9223") == []

    @pytest.mark.asyncio
    async def test_stale_adb_rule_is_repointed(self, bridge: FakeBridge) -> None:
        bridge.on(
            "adb", "forward", "--list",
            stdout="1WMHH tcp:9222 localabstract:chrome_devtools_remote_1111\n",
        )
        with patch("quest_dev.device.forwarding.is_port_listening", AsyncMock()) as probe:
            assert await ensure_forward("chrome_devtools_remote_4321", 9222) is True
        probe.assert_not_called()
        assert bridge.calls_to("adb", "forward", "tcp:9222") == [
            ["adb", "forward", "tcp:9222", "localabstract:chrome_devtools_remote_4321"]
        ]

    @pytest.mark.asyncio
    async def test_socket_prefix_is_not_a_match(self, bridge: FakeBridge) -> None:
        bridge.on(
            "adb", "forward", "--list",
            stdout="1WMHH tcp:9223 localabstract:chrome_devtools_remote_4321\n",
        )
        assert await ensure_forward("chrome_devtools_remote", 9223) is True


class TestIsPortListening:
    @pytest.mark.asyncio
    async def test_listening_port(self) -> None:
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            assert await is_port_listening(port) is True
        finally:
            server.close()
            await server.wait_closed()

    @pytest.mark.asyncio
    async def test_closed_port(self) -> None:
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()
        assert await is_port_listening(port) is False

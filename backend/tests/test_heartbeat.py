"""
Tests for the heartbeat monitor.

Uses sub-second deadlines so timers fire during the test.
"""

import asyncio

import pytest

from ws_gateway.components.connection.heartbeat import HeartbeatMonitor, HeartbeatState


class TestHeartbeatMonitor:
    """Probe deadlines, pong renewal and timeout callbacks."""

    @pytest.mark.asyncio
    async def test_silent_connection_times_out(self):
        timed_out: list[str] = []

        async def on_timeout(connection_id: str) -> None:
            timed_out.append(connection_id)

        monitor = HeartbeatMonitor(pong_timeout=0.05, ping_interval=0.2, on_timeout=on_timeout)
        monitor.register("c1")
        assert monitor.state("c1") is HeartbeatState.PROBED

        await asyncio.sleep(0.15)

        assert timed_out == ["c1"]
        assert monitor.state("c1") is None
        assert monitor.tracked_count == 0
        assert monitor.get_stats()["timeouts"] == 1

    @pytest.mark.asyncio
    async def test_pong_before_deadline_keeps_connection(self):
        timed_out: list[str] = []

        async def on_timeout(connection_id: str) -> None:
            timed_out.append(connection_id)

        monitor = HeartbeatMonitor(pong_timeout=0.1, ping_interval=0.1, on_timeout=on_timeout)
        monitor.register("c1")

        # Renewal deadline is ping_interval + pong_timeout = 0.2s
        for _ in range(4):
            await asyncio.sleep(0.06)
            assert monitor.record_pong("c1") is True

        assert timed_out == []
        assert monitor.state("c1") is HeartbeatState.HEALTHY
        monitor.remove("c1")

    @pytest.mark.asyncio
    async def test_remove_cancels_timer(self):
        timed_out: list[str] = []

        async def on_timeout(connection_id: str) -> None:
            timed_out.append(connection_id)

        monitor = HeartbeatMonitor(pong_timeout=0.05, ping_interval=0.2, on_timeout=on_timeout)
        monitor.register("c1")
        monitor.remove("c1")

        await asyncio.sleep(0.1)

        assert timed_out == []
        assert monitor.record_pong("c1") is False

    @pytest.mark.asyncio
    async def test_mark_pinged_moves_to_awaiting_pong(self):
        monitor = HeartbeatMonitor(pong_timeout=5, ping_interval=10)
        monitor.register("c1")
        monitor.register("c2")

        targets = monitor.mark_pinged()

        assert sorted(targets) == ["c1", "c2"]
        assert monitor.state("c1") is HeartbeatState.AWAITING_PONG
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_ping_tick_after_pong_returns_to_awaiting_pong(self):
        timed_out: list[str] = []

        async def on_timeout(connection_id: str) -> None:
            timed_out.append(connection_id)

        monitor = HeartbeatMonitor(pong_timeout=0.05, ping_interval=0.1, on_timeout=on_timeout)
        monitor.register("c1")
        monitor.mark_pinged()
        monitor.record_pong("c1")
        assert monitor.state("c1") is HeartbeatState.HEALTHY

        monitor.mark_pinged()
        assert monitor.state("c1") is HeartbeatState.AWAITING_PONG

        # The tick keeps the renewed deadline (0.15s) instead of re-arming it
        await asyncio.sleep(0.08)
        assert timed_out == []
        await asyncio.sleep(0.12)
        assert timed_out == ["c1"]
        await monitor.stop()
        assert monitor.tracked_count == 0

    @pytest.mark.asyncio
    async def test_ping_loop_sends_to_tracked_connections(self):
        sent: list[list[str]] = []

        async def send_ping(connection_ids: list[str]) -> None:
            sent.append(sorted(connection_ids))

        monitor = HeartbeatMonitor(pong_timeout=1.0, ping_interval=0.05)
        monitor.register("c1")
        monitor.start(send_ping)

        await asyncio.sleep(0.12)
        await monitor.stop()

        assert sent
        assert sent[0] == ["c1"]

    @pytest.mark.asyncio
    async def test_callback_error_is_contained(self):
        async def on_timeout(connection_id: str) -> None:
            raise RuntimeError("boom")

        monitor = HeartbeatMonitor(pong_timeout=0.02, ping_interval=0.2, on_timeout=on_timeout)
        monitor.register("c1")
        monitor.register("c2")

        await asyncio.sleep(0.1)

        assert monitor.get_stats()["timeouts"] == 2

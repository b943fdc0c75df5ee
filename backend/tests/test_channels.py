"""
Tests for the channel hub: subscriptions, fan-out and failing recipients.
"""

import pytest

from tests.conftest import FakeSender
from ws_gateway.components.connection.channels import ChannelHub
from ws_gateway.components.core.constants import WSCloseCode


class TestChannelHub:
    """Room channels and broadcast semantics."""

    @pytest.mark.asyncio
    async def test_emit_to_room_reaches_subscribers_only(self):
        hub = ChannelHub()
        a, b, c = FakeSender(), FakeSender(), FakeSender()
        hub.add("a", a)
        hub.add("b", b)
        hub.add("c", c)
        hub.subscribe("a", "general")
        hub.subscribe("b", "general")
        hub.subscribe("c", "tech")

        sent = await hub.emit_to_room("general", "message", {"text": "hi"})

        assert sent == 2
        assert a.frames == [{"event": "message", "data": {"text": "hi"}}]
        assert b.frames == a.frames
        assert c.frames == []

    @pytest.mark.asyncio
    async def test_exclude_skips_sender(self):
        hub = ChannelHub()
        a, b = FakeSender(), FakeSender()
        hub.add("a", a)
        hub.add("b", b)
        hub.subscribe("a", "general")
        hub.subscribe("b", "general")

        await hub.emit_to_room("general", "userTyping", {"isTyping": True}, exclude="a")

        assert a.frames == []
        assert len(b.frames) == 1

    @pytest.mark.asyncio
    async def test_failing_recipient_is_dropped_without_failing_broadcast(self):
        hub = ChannelHub()
        good, bad = FakeSender(), FakeSender(fail=True)
        hub.add("good", good)
        hub.add("bad", bad)
        hub.subscribe("good", "general")
        hub.subscribe("bad", "general")

        sent = await hub.emit_to_room("general", "message", {})

        assert sent == 1
        assert hub.has("bad") is False
        assert hub.members("general") == {"good"}
        assert hub.get_stats()["send_failures"] == 1

    @pytest.mark.asyncio
    async def test_emit_to_all_and_unknown_target(self):
        hub = ChannelHub()
        a, b = FakeSender(), FakeSender()
        hub.add("a", a)
        hub.add("b", b)

        assert await hub.emit_to_all("roomCreated", {"id": "x"}) == 2
        assert await hub.emit("missing", "error", {}) is False

    @pytest.mark.asyncio
    async def test_unsubscribe_and_discard(self):
        hub = ChannelHub()
        a = FakeSender()
        hub.add("a", a)
        hub.subscribe("a", "general")
        hub.subscribe("a", "tech")

        hub.unsubscribe("a", "general")
        assert hub.subscriptions("a") == {"tech"}

        hub.discard("a")
        assert hub.members("tech") == set()
        assert hub.connection_count == 0

    @pytest.mark.asyncio
    async def test_close_truncates_reason(self):
        hub = ChannelHub()
        a = FakeSender()
        hub.add("a", a)

        await hub.close("a", WSCloseCode.HEARTBEAT_TIMEOUT, "x" * 500)

        assert a.closed is True
        assert a.close_code == WSCloseCode.HEARTBEAT_TIMEOUT
        assert len(a.close_reason) == 123

    def test_subscribe_requires_known_connection(self):
        hub = ChannelHub()
        hub.subscribe("ghost", "general")
        assert hub.members("general") == set()

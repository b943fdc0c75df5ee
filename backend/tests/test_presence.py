"""
Tests for the presence registry.
"""

import pytest

from shared.config.constants import LOBBY_ROOM
from ws_gateway.components.connection.presence import Identity, PresenceRegistry


def make_identity(connection_id: str, username: str, room: str) -> Identity:
    return Identity(id=connection_id, username=username, room=room, connection_id=connection_id)


class TestPresenceRegistry:
    """Supersession rules, room moves and lookups."""

    def test_add_and_resolve_by_connection(self):
        registry = PresenceRegistry()
        stored = registry.add_or_update(make_identity("c1", "alice", "general"))

        assert registry.by_connection("c1") is stored
        assert stored.is_online is True
        assert registry.count == 1

    def test_same_connection_replaces_previous_identity(self):
        registry = PresenceRegistry()
        registry.add_or_update(make_identity("c1", "alice", "general"))
        registry.add_or_update(make_identity("c1", "alice2", "tech"))

        assert registry.count == 1
        identity = registry.by_connection("c1")
        assert identity.username == "alice2"
        assert identity.room == "tech"

    def test_same_name_and_room_rebinds_connection(self):
        registry = PresenceRegistry()
        first = registry.add_or_update(make_identity("c1", "alice", "general"))
        registry.set_online(first.id, False)

        rebound = registry.add_or_update(make_identity("c2", "alice", "general"))

        assert rebound.id == "c1"
        assert rebound.connection_id == "c2"
        assert rebound.is_online is True
        assert registry.count == 1
        assert registry.by_connection("c1") is None
        assert registry.by_connection("c2") is rebound

    def test_join_from_connection_whose_id_was_rebound_gets_fresh_id(self):
        registry = PresenceRegistry()
        registry.add_or_update(make_identity("c1", "bob", "general"))
        registry.add_or_update(make_identity("c2", "bob", "general"))

        carol = registry.add_or_update(make_identity("c1", "carol", "tech"))

        assert carol.id != "c1"
        assert registry.by_connection("c1") is carol
        bob = registry.by_connection("c2")
        assert (bob.id, bob.username, bob.room) == ("c1", "bob", "general")
        assert registry.count == 2

        registry.remove(bob.id)
        assert registry.by_connection("c1") is carol

    def test_same_name_different_room_is_new_identity(self):
        registry = PresenceRegistry()
        registry.add_or_update(make_identity("c1", "alice", "general"))
        registry.add_or_update(make_identity("c2", "alice", "tech"))

        assert registry.count == 2

    def test_remove_makes_connection_unresolvable(self):
        registry = PresenceRegistry()
        registry.add_or_update(make_identity("c1", "alice", "general"))

        removed = registry.remove("c1")

        assert removed.username == "alice"
        assert registry.by_connection("c1") is None
        assert registry.remove("c1") is None

    def test_move_out_sends_identity_to_lobby(self):
        registry = PresenceRegistry()
        registry.add_or_update(make_identity("c1", "alice", "general"))

        moved = registry.move_out("c1", "general")

        assert moved.room == LOBBY_ROOM
        assert registry.by_connection("c1").room == LOBBY_ROOM

    def test_move_out_other_room_is_noop(self):
        registry = PresenceRegistry()
        registry.add_or_update(make_identity("c1", "alice", "general"))

        unchanged = registry.move_out("c1", "tech")

        assert unchanged.room == "general"
        assert registry.move_out("missing", "general") is None

    def test_in_room_returns_copies_in_insertion_order(self):
        registry = PresenceRegistry()
        registry.add_or_update(make_identity("c1", "alice", "general"))
        registry.add_or_update(make_identity("c2", "bob", "general"))
        registry.add_or_update(make_identity("c3", "carol", "tech"))

        members = registry.in_room("general")
        assert [m.username for m in members] == ["alice", "bob"]

        members[0].room = "elsewhere"
        assert registry.get("c1").room == "general"

    def test_typing_flag(self):
        registry = PresenceRegistry()
        registry.add_or_update(make_identity("c1", "alice", "general"))

        registry.set_typing("c1", True)
        assert registry.get("c1").is_typing is True
        assert registry.set_typing("missing", True) is None

    def test_identities_view_is_read_only(self):
        registry = PresenceRegistry()
        registry.add_or_update(make_identity("c1", "alice", "general"))

        view = registry.identities
        assert "c1" in view
        with pytest.raises(TypeError):
            view["c2"] = make_identity("c2", "bob", "general")  # type: ignore[index]
        assert registry.count == 1

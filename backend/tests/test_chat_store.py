"""
Tests for the chat repository and its async store facade.
"""

import asyncio
from datetime import timedelta

import pytest

from rest_api.models import utcnow
from rest_api.repositories.chat import ChatRepository, MessageFilters
from shared.config.constants import DEFAULT_ROOMS, SYSTEM_USER
from shared.utils.exceptions import RoomAlreadyExistsError, StorageError
from ws_gateway.components.data.chat_store import ChatStore


class TestChatRepository:
    """Synchronous data access."""

    def test_create_user_is_upsert(self, db_session_factory):
        with db_session_factory() as db:
            repo = ChatRepository(db)
            repo.create_user("u1", "alice", "general", "c1")
            user = repo.create_user("u1", "alice", "tech", "c2")

            assert user.room == "tech"
            assert user.connection_id == "c2"
            assert user.is_online is True

    def test_update_user_status_unknown_user(self, db_session_factory):
        with db_session_factory() as db:
            repo = ChatRepository(db)
            assert repo.update_user_status("missing", is_online=False) is False

    def test_retention_ceiling_purges_oldest(self, db_session_factory):
        base = utcnow()
        with db_session_factory() as db:
            repo = ChatRepository(db, max_messages_per_room=3)
            for i in range(5):
                repo.append_message(f"m{i}", "alice", f"msg {i}", "general", timestamp=base + timedelta(seconds=i))

            remaining = repo.list_messages("general", limit=10)

            assert [m.message_id for m in remaining] == ["m2", "m3", "m4"]

    def test_list_messages_desc_order(self, db_session_factory):
        base = utcnow()
        with db_session_factory() as db:
            repo = ChatRepository(db)
            for i in range(3):
                repo.append_message(f"m{i}", "alice", "x", "general", timestamp=base + timedelta(seconds=i))

            newest = repo.list_messages("general", limit=2, order="desc")

            assert [m.message_id for m in newest] == ["m2", "m1"]

    def test_purge_oldest_counts(self, db_session_factory):
        with db_session_factory() as db:
            repo = ChatRepository(db)
            for i in range(3):
                repo.append_message(f"m{i}", "alice", "x", "general")

            assert repo.purge_oldest("general", 2) == 2
            assert repo.purge_oldest("general", 0) == 0
            assert repo.count_messages("general") == 1

    def test_recent_messages_filters(self, db_session_factory):
        base = utcnow()
        with db_session_factory() as db:
            repo = ChatRepository(db)
            repo.append_message("a1", "alice", "x", "general", timestamp=base)
            repo.append_message("b1", "bob", "x", "general", timestamp=base + timedelta(seconds=1))
            repo.append_message("a2", "alice", "x", "tech", timestamp=base + timedelta(seconds=2))

            by_user = repo.list_recent_messages(MessageFilters(user="alice"))
            by_room = repo.list_recent_messages(MessageFilters(room="general", limit=1))
            by_time = repo.list_recent_messages(MessageFilters(start=base + timedelta(seconds=1)))

            assert [m.message_id for m in by_user] == ["a2", "a1"]
            assert [m.message_id for m in by_room] == ["b1"]
            assert {m.message_id for m in by_time} == {"b1", "a2"}

    def test_filters_clamp_limits(self):
        assert MessageFilters(limit=0).limit == 1
        assert MessageFilters(limit=10_000).limit == 500
        assert MessageFilters(offset=-3).offset == 0


class TestChatStore:
    """Async facade: records, seeding and error translation."""

    @pytest.mark.asyncio
    async def test_seed_default_rooms_is_idempotent(self, store):
        created = await store.seed_default_rooms()
        again = await store.seed_default_rooms()

        assert created == [room_id for room_id, _ in DEFAULT_ROOMS]
        assert again == []

        rooms = await store.list_rooms()
        assert [r.id for r in rooms] == created
        history = await store.list_messages("general")
        assert len(history) == 1
        assert history[0].user == SYSTEM_USER
        assert history[0].is_system is True

    @pytest.mark.asyncio
    async def test_duplicate_room_raises_room_already_exists(self, store):
        await store.create_room("team-chat", "Team Chat", "alice")

        with pytest.raises(RoomAlreadyExistsError):
            await store.create_room("team-chat", "Other", "bob")

        room = await store.find_room("team-chat")
        assert room.name == "Team Chat"
        assert room.created_by == "alice"

    @pytest.mark.asyncio
    async def test_message_record_wire_format(self, store):
        record = await store.append_message("alice", "hi", "general")

        wire = record.to_wire()
        assert wire["user"] == "alice"
        assert wire["text"] == "hi"
        assert wire["room"] == "general"
        assert wire["isSystem"] is False
        assert wire["timestamp"].endswith("Z") or "+00:00" in wire["timestamp"]

    @pytest.mark.asyncio
    async def test_database_error_becomes_storage_error(self, db_session_factory):
        def broken_factory():
            raise RuntimeError("database is down")

        store = ChatStore(session_factory=broken_factory, timeout=1.0)

        with pytest.raises(StorageError) as exc_info:
            await store.list_rooms()

        assert exc_info.value.operation == "list_rooms"
        assert store.get_stats()["calls"]["errors"] == 1

    @pytest.mark.asyncio
    async def test_timeout_becomes_storage_error(self, store):
        store._timeout = 0.01

        def slow(repo):
            import time

            time.sleep(0.2)

        with pytest.raises(StorageError):
            await store._run("slow", slow)

        assert store.get_stats()["calls"]["timeouts"] == 1
        # Let the worker thread finish before the schema is dropped
        await asyncio.sleep(0.25)

"""
Chat Store - async access to chat persistence.

Wraps the synchronous ChatRepository so the event loop never blocks on the
database: every call runs on a worker thread with a timeout. Every failure
surfaces as StorageError (RoomAlreadyExistsError for duplicate rooms), which
the gateway translates into a client-visible error event.
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, TypeVar

from sqlalchemy.orm import Session, sessionmaker

from rest_api.models import ChatMessage, ChatRoom, as_utc
from rest_api.repositories.chat import ChatRepository, MessageFilters, SortOrder
from shared.config.constants import DEFAULT_ROOMS, SYSTEM_USER, welcome_message
from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.utils.exceptions import RoomAlreadyExistsError, StorageError
from shared.utils.schemas import MessageOut, RoomOut

logger = get_logger(__name__)

T = TypeVar("T")


def new_message_id() -> str:
    """Random message id, unique per process."""
    return uuid.uuid4().hex


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class MessageRecord:
    """A message detached from its database session."""

    id: str
    user: str
    text: str
    room: str
    timestamp: datetime
    is_system: bool = False

    @classmethod
    def from_row(cls, row: ChatMessage) -> MessageRecord:
        return cls(
            id=row.message_id,
            user=row.user,
            text=row.text,
            room=row.room,
            timestamp=as_utc(row.timestamp),
            is_system=row.is_system,
        )

    def to_wire(self) -> dict[str, Any]:
        return MessageOut(
            id=self.id,
            user=self.user,
            text=self.text,
            room=self.room,
            timestamp=self.timestamp,
            is_system=self.is_system,
        ).to_wire()


@dataclass(frozen=True)
class RoomRecord:
    """Room metadata detached from its database session."""

    id: str
    name: str
    created_by: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: ChatRoom) -> RoomRecord:
        return cls(
            id=row.room_id,
            name=row.name,
            created_by=row.created_by,
            created_at=as_utc(row.created_at),
        )

    def to_wire(self) -> dict[str, Any]:
        return RoomOut(
            id=self.id,
            name=self.name,
            created_by=self.created_by,
            created_at=self.created_at,
        ).to_wire()


# =============================================================================
# Store
# =============================================================================


class ChatStore:
    """
    Async facade over ChatRepository.

    Usage:
        store = ChatStore()
        room = await store.create_room("team-chat", "Team Chat", "alice")
        history = await store.list_messages("team-chat")
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        timeout: float | None = None,
        max_messages_per_room: int | None = None,
        history_limit: int | None = None,
    ):
        """
        Args:
            session_factory: Session factory; defaults to shared SessionLocal.
            timeout: Seconds before a call is reported as failed.
            max_messages_per_room: Retention ceiling per room.
            history_limit: Default number of messages returned as history.
        """
        if session_factory is None:
            from shared.infrastructure.db import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory
        self._timeout = timeout if timeout is not None else settings.db_call_timeout
        self._max_messages_per_room = (
            max_messages_per_room if max_messages_per_room is not None else settings.max_messages_per_room
        )
        self._history_limit = history_limit if history_limit is not None else settings.message_history_limit

        self._calls_success = 0
        self._calls_timeout = 0
        self._calls_error = 0

    @property
    def max_messages_per_room(self) -> int:
        return self._max_messages_per_room

    # =========================================================================
    # Users
    # =========================================================================

    async def create_user(
        self,
        user_id: str,
        username: str,
        room: str,
        connection_id: str | None = None,
    ) -> None:
        """Insert or refresh the persisted mirror of an identity."""

        def op(repo: ChatRepository) -> None:
            repo.create_user(user_id, username, room, connection_id)

        await self._run("create_user", op)

    async def update_user_status(
        self,
        user_id: str,
        *,
        is_online: bool | None = None,
        is_typing: bool | None = None,
        connection_id: str | None = None,
        room: str | None = None,
    ) -> bool:
        return await self._run(
            "update_user_status",
            lambda repo: repo.update_user_status(
                user_id,
                is_online=is_online,
                is_typing=is_typing,
                connection_id=connection_id,
                room=room,
            ),
        )

    # =========================================================================
    # Rooms
    # =========================================================================

    async def find_room(self, room_id: str) -> RoomRecord | None:
        def op(repo: ChatRepository) -> RoomRecord | None:
            row = repo.find_room(room_id)
            return RoomRecord.from_row(row) if row is not None else None

        return await self._run("find_room", op)

    async def create_room(self, room_id: str, name: str, created_by: str) -> RoomRecord:
        """
        Raises:
            RoomAlreadyExistsError: If room_id is taken.
            StorageError: On any other failure.
        """
        return await self._run(
            "create_room",
            lambda repo: RoomRecord.from_row(repo.create_room(room_id, name, created_by)),
        )

    async def list_rooms(self) -> list[RoomRecord]:
        return await self._run(
            "list_rooms",
            lambda repo: [RoomRecord.from_row(row) for row in repo.list_rooms()],
        )

    async def seed_default_rooms(self) -> list[str]:
        """
        Create the default rooms that do not exist yet, each with a welcome
        message.

        Returns:
            Ids of the rooms created.
        """

        def op(repo: ChatRepository) -> list[str]:
            created = []
            for room_id, name in DEFAULT_ROOMS:
                if repo.find_room(room_id) is not None:
                    continue
                try:
                    repo.create_room(room_id, name, SYSTEM_USER)
                except RoomAlreadyExistsError:
                    continue
                repo.append_message(
                    new_message_id(), SYSTEM_USER, welcome_message(name), room_id, is_system=True
                )
                created.append(room_id)
            return created

        created = await self._run("seed_default_rooms", op)
        if created:
            logger.info("Seeded default rooms", rooms=created)
        return created

    # =========================================================================
    # Messages
    # =========================================================================

    async def append_message(
        self,
        user: str,
        text: str,
        room: str,
        is_system: bool = False,
        message_id: str | None = None,
    ) -> MessageRecord:
        """Persist a message; the room is trimmed to its retention ceiling."""
        message_id = message_id or new_message_id()
        return await self._run(
            "append_message",
            lambda repo: MessageRecord.from_row(
                repo.append_message(message_id, user, text, room, is_system=is_system)
            ),
        )

    async def list_messages(
        self,
        room_id: str,
        limit: int | None = None,
        order: SortOrder = "asc",
    ) -> list[MessageRecord]:
        limit = limit if limit is not None else self._history_limit
        return await self._run(
            "list_messages",
            lambda repo: [MessageRecord.from_row(row) for row in repo.list_messages(room_id, limit, order)],
        )

    async def purge_oldest(self, room_id: str, count: int) -> int:
        return await self._run("purge_oldest", lambda repo: repo.purge_oldest(room_id, count))

    async def list_recent_messages(
        self,
        room: str | None = None,
        user: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[MessageRecord]:
        """Messages across all rooms, newest first."""
        filters = MessageFilters(limit=limit, offset=offset, room=room, user=user, start=start, end=end)
        return await self._run(
            "list_recent_messages",
            lambda repo: [MessageRecord.from_row(row) for row in repo.list_recent_messages(filters)],
        )

    async def ping(self) -> bool:
        return await self._run("ping", lambda repo: repo.ping())

    # =========================================================================
    # Execution
    # =========================================================================

    def _call_sync(self, fn: Callable[[ChatRepository], T]) -> T:
        with self._session_factory() as db:
            repo = ChatRepository(db, max_messages_per_room=self._max_messages_per_room)
            return fn(repo)

    async def _run(self, operation: str, fn: Callable[[ChatRepository], T]) -> T:
        """Run a repository call on a worker thread with a timeout."""
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._call_sync, fn),
                timeout=self._timeout,
            )
        except RoomAlreadyExistsError:
            self._calls_success += 1
            raise
        except asyncio.TimeoutError as e:
            self._calls_timeout += 1
            logger.error(
                "Storage call timed out",
                operation=operation,
                timeout=self._timeout,
                total_timeouts=self._calls_timeout,
            )
            raise StorageError(operation, f"Storage operation '{operation}' timed out") from e
        except StorageError:
            self._calls_error += 1
            raise
        except Exception as e:
            self._calls_error += 1
            logger.error(
                "Storage call failed",
                operation=operation,
                error=str(e),
                total_errors=self._calls_error,
            )
            raise StorageError(operation) from e

        self._calls_success += 1
        return result

    def get_stats(self) -> dict[str, Any]:
        return {
            "timeout": self._timeout,
            "calls": {
                "success": self._calls_success,
                "timeouts": self._calls_timeout,
                "errors": self._calls_error,
            },
        }


# Singleton instance
_store: ChatStore | None = None
_store_lock = threading.Lock()


def get_chat_store() -> ChatStore:
    """Get the singleton ChatStore instance."""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                _store = ChatStore()
    return _store


def reset_chat_store() -> None:
    """Reset the singleton. For testing."""
    global _store
    with _store_lock:
        _store = None

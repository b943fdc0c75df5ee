"""
Chat Repository - Data access for chat users, rooms and messages.
Synchronous; the async ChatStore runs these methods on worker threads.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Sequence

from sqlalchemy import Select, delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rest_api.models import ChatMessage, ChatRoom, ChatUser, utcnow
from shared.config.logging import get_logger
from shared.utils.exceptions import RoomAlreadyExistsError
from .base import BaseRepository, RepositoryFilters

logger = get_logger(__name__)

SortOrder = Literal["asc", "desc"]


@dataclass
class MessageFilters(RepositoryFilters):
    """Filters for the reporting message listing."""

    room: str | None = None
    user: str | None = None
    start: datetime | None = None
    end: datetime | None = None


class ChatRepository(BaseRepository):
    """
    Repository for ChatUser, ChatRoom and ChatMessage rows.

    Usage:
        with SessionLocal() as db:
            repo = ChatRepository(db, max_messages_per_room=50)
            repo.append_message("ab12", "alice", "hi", "general")
    """

    def __init__(self, db: Session, max_messages_per_room: int = 50):
        super().__init__(db)
        self._max_messages_per_room = max_messages_per_room

    # =========================================================================
    # Users
    # =========================================================================

    def create_user(
        self,
        user_id: str,
        username: str,
        room: str,
        connection_id: str | None = None,
    ) -> ChatUser:
        """
        Insert a user row, or refresh the existing row with the same user_id.
        Marks the user online and not typing.
        """
        user = self._db.scalar(select(ChatUser).where(ChatUser.user_id == user_id))
        if user is None:
            user = ChatUser(user_id=user_id)
            self._db.add(user)

        user.username = username
        user.room = room
        user.connection_id = connection_id
        user.is_online = True
        user.is_typing = False
        user.last_active = utcnow()
        self._commit()
        return user

    def update_user_status(
        self,
        user_id: str,
        *,
        is_online: bool | None = None,
        is_typing: bool | None = None,
        connection_id: str | None = None,
        room: str | None = None,
    ) -> bool:
        """
        Update the given fields of a user row and touch last_active.

        Returns:
            False if no row exists for user_id.
        """
        user = self._db.scalar(select(ChatUser).where(ChatUser.user_id == user_id))
        if user is None:
            return False

        if is_online is not None:
            user.is_online = is_online
        if is_typing is not None:
            user.is_typing = is_typing
        if connection_id is not None:
            user.connection_id = connection_id
        if room is not None:
            user.room = room
        user.last_active = utcnow()
        self._commit()
        return True

    # =========================================================================
    # Rooms
    # =========================================================================

    def find_room(self, room_id: str) -> ChatRoom | None:
        return self._db.scalar(select(ChatRoom).where(ChatRoom.room_id == room_id))

    def create_room(self, room_id: str, name: str, created_by: str) -> ChatRoom:
        """
        Insert a room.

        Raises:
            RoomAlreadyExistsError: If room_id is taken.
        """
        if self.find_room(room_id) is not None:
            raise RoomAlreadyExistsError(room_id)

        room = ChatRoom(room_id=room_id, name=name, created_by=created_by, created_at=utcnow())
        self._db.add(room)
        try:
            self._commit()
        except IntegrityError as e:
            # Lost a race with a concurrent insert of the same id
            raise RoomAlreadyExistsError(room_id) from e
        return room

    def list_rooms(self) -> Sequence[ChatRoom]:
        return self._db.scalars(
            select(ChatRoom).order_by(ChatRoom.created_at, ChatRoom.id)
        ).all()

    # =========================================================================
    # Messages
    # =========================================================================

    def append_message(
        self,
        message_id: str,
        user: str,
        text: str,
        room: str,
        is_system: bool = False,
        timestamp: datetime | None = None,
    ) -> ChatMessage:
        """
        Insert a message, then purge the oldest rows of the room beyond the
        per-room ceiling.
        """
        message = ChatMessage(
            message_id=message_id,
            user=user,
            text=text,
            room=room,
            is_system=is_system,
            timestamp=timestamp or utcnow(),
        )
        self._db.add(message)
        self._commit()

        excess = self.count_messages(room) - self._max_messages_per_room
        if excess > 0:
            self.purge_oldest(room, excess)
        return message

    def count_messages(self, room_id: str) -> int:
        return self._db.scalar(
            select(func.count()).select_from(ChatMessage).where(ChatMessage.room == room_id)
        ) or 0

    def list_messages(
        self,
        room_id: str,
        limit: int,
        order: SortOrder = "asc",
    ) -> Sequence[ChatMessage]:
        """
        Messages of a room ordered by timestamp.
        Ties are broken by insertion order.
        """
        query = select(ChatMessage).where(ChatMessage.room == room_id)
        if order == "desc":
            query = query.order_by(ChatMessage.timestamp.desc(), ChatMessage.id.desc())
        else:
            query = query.order_by(ChatMessage.timestamp, ChatMessage.id)
        return self._db.scalars(query.limit(limit)).all()

    def purge_oldest(self, room_id: str, count: int) -> int:
        """
        Delete the `count` oldest messages of a room.

        Returns:
            Number of rows deleted.
        """
        if count <= 0:
            return 0

        oldest_ids = self._db.scalars(
            select(ChatMessage.id)
            .where(ChatMessage.room == room_id)
            .order_by(ChatMessage.timestamp, ChatMessage.id)
            .limit(count)
        ).all()
        if not oldest_ids:
            return 0

        result = self._db.execute(delete(ChatMessage).where(ChatMessage.id.in_(oldest_ids)))
        self._commit()
        logger.debug("Purged old messages", room=room_id, deleted=result.rowcount)
        return result.rowcount

    def list_recent_messages(self, filters: MessageFilters | None = None) -> Sequence[ChatMessage]:
        """Messages across all rooms, newest first, filtered and paginated."""
        filters = filters or MessageFilters()
        query = self._apply_filters(select(ChatMessage), filters)
        query = (
            query.order_by(ChatMessage.timestamp.desc(), ChatMessage.id.desc())
            .offset(filters.offset)
            .limit(filters.limit)
        )
        return self._db.scalars(query).all()

    def _apply_filters(self, query: Select, filters: MessageFilters) -> Select:
        if filters.room:
            query = query.where(ChatMessage.room == filters.room)
        if filters.user:
            query = query.where(ChatMessage.user == filters.user)
        if filters.start:
            query = query.where(ChatMessage.timestamp >= filters.start)
        if filters.end:
            query = query.where(ChatMessage.timestamp <= filters.end)
        return query

    def ping(self) -> bool:
        """Round trip to the database."""
        self._db.execute(select(1))
        return True

"""
Presence Registry - who is connected, under which name, in which room.

The registry is the source of truth for presence. Every mutation is a single
dict operation applied synchronously on the event loop thread, so readers
never observe a half-applied update.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from types import MappingProxyType
from uuid import uuid4

from shared.config.constants import LOBBY_ROOM
from shared.config.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Identity:
    """
    A chat participant.

    ``id`` is normally the connection id that first created the identity and
    stays stable when a later join re-binds the identity to another
    connection. If that connection id is still held by an identity re-bound
    elsewhere, the registry mints a fresh id instead.
    """

    id: str
    username: str
    room: str
    connection_id: str | None = None
    is_online: bool = True
    is_typing: bool = False


class PresenceRegistry:
    """
    In-memory mapping of connection <-> identity <-> room.

    Indices maintained:
    - identities: identity_id -> Identity (insertion order)
    - by_connection: connection_id -> identity_id

    Supersession rules for add_or_update, applied in arrival order:
    1. An identity already bound to the same connection is replaced.
    2. An identity with the same username and room is re-bound to the new
       connection instead of being duplicated.
    3. Otherwise the identity is inserted. An id already held by an identity
       bound to another connection is replaced with a fresh one.
    """

    def __init__(self) -> None:
        self._identities: dict[str, Identity] = {}
        self._by_connection: dict[str, str] = {}

    @property
    def identities(self) -> MappingProxyType[str, Identity]:
        """Identities by id (immutable view)."""
        return MappingProxyType(self._identities)

    @property
    def count(self) -> int:
        return len(self._identities)

    # =========================================================================
    # Mutations
    # =========================================================================

    def add_or_update(self, identity: Identity) -> Identity:
        """
        Insert an identity or merge it into an existing one.

        Returns:
            The stored identity.
        """
        connection_id = identity.connection_id

        if connection_id is not None:
            previous_id = self._by_connection.get(connection_id)
            if previous_id is not None:
                previous = self._identities.get(previous_id)
                if previous is not None and previous.id != identity.id:
                    logger.debug(
                        "Replacing identity bound to connection",
                        connection_id=connection_id,
                        previous_username=previous.username,
                    )
                self._discard(previous_id)

        existing = self._find_by_name(identity.username, identity.room)
        if existing is not None:
            if existing.connection_id is not None:
                self._by_connection.pop(existing.connection_id, None)
            existing.connection_id = connection_id
            existing.is_online = True
            if connection_id is not None:
                self._by_connection[connection_id] = existing.id
            logger.debug(
                "Re-bound identity to new connection",
                identity_id=existing.id,
                username=existing.username,
                connection_id=connection_id,
            )
            return existing

        stored = replace(identity, is_online=True, is_typing=False)
        held = self._identities.get(stored.id)
        if held is not None and held.connection_id != connection_id:
            stored.id = uuid4().hex
            logger.debug(
                "Identity id already held, minted a new one",
                held_by=held.connection_id,
                identity_id=stored.id,
            )
        self._identities[stored.id] = stored
        if connection_id is not None:
            self._by_connection[connection_id] = stored.id
        return stored

    def remove(self, identity_id: str) -> Identity | None:
        """Delete and return the identity if present."""
        return self._discard(identity_id)

    def move_out(self, identity_id: str, room_id: str) -> Identity | None:
        """
        Reassign the identity to the lobby if it is currently in room_id.
        The identity is kept and stays addressable by connection id.
        """
        identity = self._identities.get(identity_id)
        if identity is None:
            return None
        if identity.room == room_id:
            identity.room = LOBBY_ROOM
        return identity

    def set_typing(self, identity_id: str, is_typing: bool) -> Identity | None:
        identity = self._identities.get(identity_id)
        if identity is not None:
            identity.is_typing = is_typing
        return identity

    def set_online(self, identity_id: str, is_online: bool) -> Identity | None:
        identity = self._identities.get(identity_id)
        if identity is not None:
            identity.is_online = is_online
        return identity

    def _discard(self, identity_id: str) -> Identity | None:
        identity = self._identities.pop(identity_id, None)
        if identity is not None and identity.connection_id is not None:
            # Only drop the index entry if it still points at this identity
            if self._by_connection.get(identity.connection_id) == identity_id:
                del self._by_connection[identity.connection_id]
        return identity

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, identity_id: str) -> Identity | None:
        return self._identities.get(identity_id)

    def by_connection(self, connection_id: str) -> Identity | None:
        """Resolve the identity that sent an event on this connection."""
        identity_id = self._by_connection.get(connection_id)
        if identity_id is None:
            return None
        return self._identities.get(identity_id)

    def in_room(self, room_id: str) -> list[Identity]:
        """Snapshot of the members of a room, in insertion order."""
        return [replace(i) for i in self._identities.values() if i.room == room_id]

    def rooms(self) -> set[str]:
        """Rooms with at least one member."""
        return {i.room for i in self._identities.values()}

    def _find_by_name(self, username: str, room: str) -> Identity | None:
        for identity in self._identities.values():
            if identity.username == username and identity.room == room:
                return identity
        return None

    def get_stats(self) -> dict[str, int]:
        rooms = self.rooms()
        rooms.discard(LOBBY_ROOM)
        return {
            "identities": len(self._identities),
            "bound_connections": len(self._by_connection),
            "occupied_rooms": len(rooms),
        }

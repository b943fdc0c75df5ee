"""
Room Broadcast Gateway.

Orchestrates every connection event of the chat: connect, join, messages,
typing, room creation, history, leave and disconnect. Presence is applied in
memory first; persistence calls are the only suspension points and their
failures are reported to the calling connection, never raised.

Per-connection states:

    Connected (no identity) -> Joined -> Left (back in the lobby)
                                      -> Disconnected (terminal)
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from shared.config.constants import (
    ANONYMOUS_USER,
    LOBBY_ROOM,
    SYSTEM_USER,
    ServerEvent,
    joined_message,
    left_message,
    room_created_message,
)
from shared.config.logging import audit_ws_connection, get_logger
from shared.config.settings import settings
from shared.utils.exceptions import RoomAlreadyExistsError, StorageError
from shared.utils.schemas import (
    ErrorOut,
    PingOut,
    RoomDataOut,
    UserOut,
    UserStatusOut,
    UserTypingOut,
)
from ws_gateway.components.connection.channels import ChannelHub, Sender
from ws_gateway.components.connection.heartbeat import HeartbeatMonitor
from ws_gateway.components.connection.presence import Identity, PresenceRegistry
from ws_gateway.components.connection.rate_limiter import IdentityRateLimiter
from ws_gateway.components.core.constants import WSCloseCode
from ws_gateway.components.data.chat_store import ChatStore, MessageRecord, new_message_id
from ws_gateway.components.metrics.flow_tracker import MessageFlowTracker

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_room_id(room_id: str) -> str:
    """Lowercase, with each whitespace run replaced by a hyphen."""
    return _WHITESPACE.sub("-", room_id.strip().lower())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RoomBroadcastGateway:
    """
    Process-wide coordinator for chat connections.

    Owns the presence registry, rate limiter, heartbeat monitor, flow
    tracker and channel hub; constructed once at startup.

    Usage:
        gateway = RoomBroadcastGateway(store)
        gateway.start()
        await gateway.connect(connection_id, websocket)
        await gateway.join(connection_id, "general", "alice")
        await gateway.disconnect(connection_id)
        await gateway.stop()
    """

    def __init__(
        self,
        store: ChatStore,
        hub: ChannelHub | None = None,
        presence: PresenceRegistry | None = None,
        rate_limiter: IdentityRateLimiter | None = None,
        heartbeat: HeartbeatMonitor | None = None,
        tracker: MessageFlowTracker | None = None,
    ):
        self._store = store
        self._hub = hub or ChannelHub()
        self._presence = presence or PresenceRegistry()
        self._rate_limiter = rate_limiter or IdentityRateLimiter(
            max_messages=settings.chat_rate_limit,
            window_seconds=settings.chat_rate_window,
            block_seconds=settings.chat_rate_block_seconds,
        )
        self._heartbeat = heartbeat or HeartbeatMonitor(
            pong_timeout=settings.ws_pong_timeout,
            ping_interval=settings.ws_ping_interval,
        )
        self._heartbeat.set_timeout_callback(self._on_heartbeat_timeout)
        self._tracker = tracker or MessageFlowTracker(
            throughput_window=settings.queue_throughput_window,
            refresh_interval=settings.queue_stats_refresh_interval,
        )

        # Connections between connect() and the first disconnect()
        self._connected: set[str] = set()
        self._total_connects = 0
        self._total_disconnects = 0

    # =========================================================================
    # Components
    # =========================================================================

    @property
    def store(self) -> ChatStore:
        return self._store

    @property
    def hub(self) -> ChannelHub:
        return self._hub

    @property
    def presence(self) -> PresenceRegistry:
        return self._presence

    @property
    def rate_limiter(self) -> IdentityRateLimiter:
        return self._rate_limiter

    @property
    def heartbeat(self) -> HeartbeatMonitor:
        return self._heartbeat

    @property
    def tracker(self) -> MessageFlowTracker:
        return self._tracker

    @property
    def connection_count(self) -> int:
        return len(self._connected)

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connected

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start the periodic ping and the throughput refresh."""
        self._heartbeat.start(self.send_ping)
        self._tracker.start()

    async def stop(self) -> None:
        """Stop background tasks and close every remaining connection."""
        await self._heartbeat.stop()
        await self._tracker.stop()
        for connection_id in list(self._connected):
            await self._hub.close(connection_id, WSCloseCode.GOING_AWAY, "Server shutting down")
            await self.disconnect(connection_id)

    async def connect(self, connection_id: str, sender: Sender) -> None:
        """Register a new connection and probe it immediately."""
        self._hub.add(connection_id, sender)
        self._connected.add(connection_id)
        self._total_connects += 1
        self._heartbeat.register(connection_id)
        await self._hub.emit(connection_id, ServerEvent.PING, PingOut(timestamp=_now()).to_wire())
        logger.info("Client connected", connection_id=connection_id)

    async def disconnect(self, connection_id: str) -> None:
        """
        Tear down a connection. Idempotent: the heartbeat timeout path and
        the endpoint's own cleanup may both call it.
        """
        if connection_id not in self._connected:
            return
        self._connected.discard(connection_id)
        self._total_disconnects += 1

        self._heartbeat.remove(connection_id)
        self._hub.discard(connection_id)

        identity = self._presence.by_connection(connection_id)
        if identity is not None:
            await self._announce_departure(identity)
            self._presence.remove(identity.id)
            self._rate_limiter.remove(identity.id)

        logger.info(
            "Client disconnected",
            connection_id=connection_id,
            username=identity.username if identity else None,
        )

    async def _announce_departure(self, identity: Identity) -> None:
        room = identity.room
        self._presence.set_online(identity.id, False)

        try:
            await self._store.update_user_status(identity.id, is_online=False)
        except StorageError as e:
            logger.warning("Failed to persist offline status", identity_id=identity.id, error=str(e))

        await self._hub.emit_to_room(
            room,
            ServerEvent.USER_STATUS,
            UserStatusOut(user_id=identity.id, username=identity.username, is_online=False).to_wire(),
        )

        try:
            notice = await self._store.append_message(
                SYSTEM_USER, left_message(identity.username), room, is_system=True
            )
        except StorageError as e:
            logger.warning("Failed to persist leave notice", room=room, error=str(e))
            notice = self._transient_notice(room, left_message(identity.username))
        await self._hub.emit_to_room(room, ServerEvent.MESSAGE, notice.to_wire())

        await self._broadcast_room_data(room, exclude_identity=identity.id)

    async def _on_heartbeat_timeout(self, connection_id: str) -> None:
        audit_ws_connection("TIMED_OUT", "/ws/chat", connection_id=connection_id, reason="no pong")
        await self._hub.close(connection_id, WSCloseCode.HEARTBEAT_TIMEOUT, "Heartbeat timeout")
        await self.disconnect(connection_id)

    # =========================================================================
    # Client events
    # =========================================================================

    async def join(self, connection_id: str, room_id: str, username: str) -> None:
        room_id = (room_id or "").strip()
        username = (username or "").strip()
        if not room_id or not username:
            await self.send_error(connection_id, "Room ID and username are required.")
            return

        previous = self._presence.by_connection(connection_id)
        if previous is not None and previous.room != room_id:
            self._hub.unsubscribe(connection_id, previous.room)

        identity = self._presence.add_or_update(
            Identity(id=connection_id, username=username, room=room_id, connection_id=connection_id)
        )
        self._hub.subscribe(connection_id, room_id)
        logger.info(
            "User joined room",
            connection_id=connection_id,
            identity_id=identity.id,
            username=username,
            room=room_id,
        )

        try:
            # Upsert: a re-bound identity refreshes its existing row
            await self._store.create_user(identity.id, username, room_id, connection_id)

            notice = await self._store.append_message(
                SYSTEM_USER, joined_message(username), room_id, is_system=True
            )
            await self._hub.emit_to_room(room_id, ServerEvent.MESSAGE, notice.to_wire())

            history = await self._store.list_messages(room_id)
            await self._hub.emit(
                connection_id, ServerEvent.MESSAGE_HISTORY, [m.to_wire() for m in history]
            )
        except StorageError as e:
            logger.error("Error joining room", connection_id=connection_id, room=room_id, error=str(e))
            await self.send_error(connection_id, "An error occurred while joining the room.")

        await self._broadcast_room_data(room_id)

    async def send_message(self, connection_id: str, body: str) -> None:
        identity = self._presence.by_connection(connection_id)
        if identity is None or identity.room == LOBBY_ROOM:
            await self.send_error(connection_id, "Join a room before sending messages.")
            return
        if not body or not body.strip():
            await self.send_error(connection_id, "Message cannot be empty.")
            return
        if not self._rate_limiter.allow(identity.id):
            await self.send_error(connection_id, "Rate limit exceeded. Please slow down.")
            return

        room = identity.room
        self._presence.set_typing(identity.id, False)
        await self._hub.emit_to_room(
            room,
            ServerEvent.USER_TYPING,
            UserTypingOut(user_id=identity.id, username=identity.username, is_typing=False).to_wire(),
            exclude=connection_id,
        )

        message_id = new_message_id()
        self._tracker.track(message_id, identity.id, room)
        try:
            record = await self._store.append_message(
                identity.username, body, room, is_system=False, message_id=message_id
            )
        except StorageError as e:
            self._tracker.mark_failed(message_id, str(e))
            await self.send_error(connection_id, "Failed to send message.")
            return

        self._tracker.mark_processed(message_id)
        await self._hub.emit_to_room(room, ServerEvent.MESSAGE, record.to_wire())

        try:
            await self._store.update_user_status(identity.id, is_typing=False)
        except StorageError as e:
            logger.warning("Failed to persist typing status", identity_id=identity.id, error=str(e))

    async def typing(self, connection_id: str, is_typing: bool) -> None:
        identity = self._presence.by_connection(connection_id)
        if identity is None:
            logger.debug("Typing event from connection without identity", connection_id=connection_id)
            return

        self._presence.set_typing(identity.id, is_typing)
        await self._hub.emit_to_room(
            identity.room,
            ServerEvent.USER_TYPING,
            UserTypingOut(user_id=identity.id, username=identity.username, is_typing=is_typing).to_wire(),
            exclude=connection_id,
        )

        try:
            await self._store.update_user_status(identity.id, is_typing=is_typing)
        except StorageError as e:
            logger.warning("Failed to persist typing status", identity_id=identity.id, error=str(e))

    async def create_room(self, connection_id: str, room_id: str, room_name: str) -> None:
        identity = self._presence.by_connection(connection_id)
        if identity is None:
            await self._provision_placeholder(connection_id, room_id)
            await self.send_error(connection_id, "Please join a room first")
            return

        normalized = normalize_room_id(room_id or "")
        name = (room_name or "").strip()
        if not normalized or not name:
            await self.send_error(connection_id, "Room ID and room name are required.")
            return

        try:
            room = await self._store.create_room(normalized, name, identity.username)
        except RoomAlreadyExistsError:
            await self.send_error(connection_id, f"Room with ID {normalized} already exists")
            return
        except StorageError as e:
            logger.error("Error creating room", room_id=normalized, error=str(e))
            await self.send_error(connection_id, "Error creating room")
            return

        logger.info("Room created", room_id=room.id, created_by=identity.username)

        try:
            await self._store.append_message(
                SYSTEM_USER, room_created_message(name, identity.username), room.id, is_system=True
            )
        except StorageError as e:
            logger.warning("Failed to persist room creation notice", room_id=room.id, error=str(e))

        await self._hub.emit_to_all(ServerEvent.ROOM_CREATED, room.to_wire())
        try:
            rooms = await self._store.list_rooms()
        except StorageError as e:
            logger.warning("Failed to refresh room list", error=str(e))
        else:
            await self._hub.emit_to_all(ServerEvent.AVAILABLE_ROOMS, [r.to_wire() for r in rooms])
        await self._hub.emit(connection_id, ServerEvent.ROOM_CREATE_SUCCESS, room.to_wire())

    async def _provision_placeholder(self, connection_id: str, room_id: str | None) -> None:
        """Bind a lobby identity named after the first token of the requested room id."""
        username = (room_id or "").split("-")[0].strip() or ANONYMOUS_USER
        identity = self._presence.add_or_update(
            Identity(id=connection_id, username=username, room=LOBBY_ROOM, connection_id=connection_id)
        )
        try:
            await self._store.create_user(identity.id, username, LOBBY_ROOM, connection_id)
        except StorageError as e:
            logger.warning("Failed to persist placeholder identity", connection_id=connection_id, error=str(e))

    async def get_rooms(self, connection_id: str) -> None:
        try:
            rooms = await self._store.list_rooms()
        except StorageError as e:
            logger.error("Error fetching rooms", error=str(e))
            await self._hub.emit(connection_id, ServerEvent.AVAILABLE_ROOMS, [])
            await self.send_error(connection_id, "Error fetching rooms")
            return
        await self._hub.emit(connection_id, ServerEvent.AVAILABLE_ROOMS, [r.to_wire() for r in rooms])

    async def get_message_history(self, connection_id: str, room_id: str) -> None:
        room_id = (room_id or "").strip()
        if not room_id:
            await self.send_error(connection_id, "Room ID is required.")
            return
        try:
            history = await self._store.list_messages(room_id)
        except StorageError as e:
            logger.error("Error fetching message history", room=room_id, error=str(e))
            await self._hub.emit(connection_id, ServerEvent.MESSAGE_HISTORY, [])
            await self.send_error(connection_id, "Error fetching message history")
            return
        await self._hub.emit(
            connection_id, ServerEvent.MESSAGE_HISTORY, [m.to_wire() for m in history]
        )

    async def leave_room(self, connection_id: str, room_id: str) -> None:
        identity = self._presence.by_connection(connection_id)
        room_id = (room_id or "").strip()
        if identity is None or not room_id:
            return

        self._hub.unsubscribe(connection_id, room_id)

        notice = self._transient_notice(room_id, left_message(identity.username))
        await self._hub.emit_to_room(room_id, ServerEvent.MESSAGE, notice.to_wire())
        await self._broadcast_room_data(room_id, exclude_identity=identity.id)

        moved = self._presence.move_out(identity.id, room_id)
        logger.info("User left room", identity_id=identity.id, room=room_id)
        if moved is not None and moved.room == LOBBY_ROOM:
            try:
                await self._store.update_user_status(identity.id, room=LOBBY_ROOM)
            except StorageError as e:
                logger.warning("Failed to persist room change", identity_id=identity.id, error=str(e))

    async def pong(self, connection_id: str) -> None:
        if not self._heartbeat.record_pong(connection_id):
            logger.debug("Pong from untracked connection", connection_id=connection_id)

    # =========================================================================
    # Outbound helpers
    # =========================================================================

    async def send_error(self, connection_id: str, message: str) -> None:
        """Report a non-fatal error to one connection only."""
        await self._hub.emit(
            connection_id,
            ServerEvent.ERROR,
            ErrorOut(message=message, timestamp=_now()).to_wire(),
        )

    async def send_ping(self, connection_ids: list[str]) -> None:
        await self._hub.emit_to_many(connection_ids, ServerEvent.PING, PingOut(timestamp=_now()).to_wire())

    async def _broadcast_room_data(self, room: str, exclude_identity: str | None = None) -> None:
        members = [i for i in self._presence.in_room(room) if i.id != exclude_identity]
        payload = RoomDataOut(
            room=room,
            users=[
                UserOut(
                    id=i.id,
                    username=i.username,
                    room=i.room,
                    is_online=i.is_online,
                    is_typing=i.is_typing,
                    connection_id=i.connection_id,
                )
                for i in members
            ],
        )
        await self._hub.emit_to_room(room, ServerEvent.ROOM_DATA, payload.to_wire())

    @staticmethod
    def _transient_notice(room: str, text: str) -> MessageRecord:
        """System notice that is broadcast without being stored."""
        return MessageRecord(
            id=new_message_id(),
            user=SYSTEM_USER,
            text=text,
            room=room,
            timestamp=_now(),
            is_system=True,
        )

    # =========================================================================
    # Housekeeping
    # =========================================================================

    def run_maintenance(self) -> dict[str, int]:
        """Drop rate limiter states that no longer constrain anyone."""
        return {"rate_limiter_cleaned": self._rate_limiter.cleanup_stale()}

    def get_stats(self) -> dict[str, Any]:
        return {
            "active_connections": len(self._connected),
            "total_connects": self._total_connects,
            "total_disconnects": self._total_disconnects,
            "presence": self._presence.get_stats(),
            "channels": self._hub.get_stats(),
            "rate_limiter": self._rate_limiter.get_stats(),
            "heartbeat": self._heartbeat.get_stats(),
            "message_flow": self._tracker.get_stats(),
            "store": self._store.get_stats(),
        }

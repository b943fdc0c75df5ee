"""
Event Router - dispatches client frames to the gateway.

Usage:
    router = EventRouter(gateway)
    await router.dispatch(connection_id, raw_text)

A malformed frame, an unknown event or an invalid payload is answered with
an ``error`` event on the same connection. The connection is never closed
because of the content of a frame.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from pydantic import ValidationError

from shared.config.constants import ClientEvent
from shared.config.logging import get_logger
from ws_gateway.components.core.context import sanitize_log_data
from ws_gateway.components.events.types import (
    ClientFrame,
    CreateRoomPayload,
    JoinPayload,
    RoomRefPayload,
    SendMessagePayload,
    TypingPayload,
)

if TYPE_CHECKING:
    from ws_gateway.gateway import RoomBroadcastGateway

logger = get_logger(__name__)

Handler = Callable[[str, Any], Awaitable[None]]


class EventRouter:
    """Maps client event names to gateway operations."""

    def __init__(self, gateway: RoomBroadcastGateway):
        self._gateway = gateway
        self._handlers: dict[str, Handler] = {
            ClientEvent.JOIN: self._on_join,
            ClientEvent.SEND_MESSAGE: self._on_send_message,
            ClientEvent.TYPING: self._on_typing,
            ClientEvent.CREATE_ROOM: self._on_create_room,
            ClientEvent.GET_ROOMS: self._on_get_rooms,
            ClientEvent.GET_MESSAGE_HISTORY: self._on_get_message_history,
            ClientEvent.LEAVE_ROOM: self._on_leave_room,
            ClientEvent.PONG: self._on_pong,
        }

        self._dispatched = 0
        self._rejected = 0
        self._failed = 0

    @property
    def events(self) -> frozenset[str]:
        return frozenset(self._handlers)

    async def dispatch(self, connection_id: str, raw: str) -> bool:
        """
        Parse and handle one client frame.

        Returns:
            True if a handler ran to completion.
        """
        try:
            frame = ClientFrame.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            self._rejected += 1
            logger.warning(
                "Malformed frame",
                connection_id=connection_id,
                error=str(e).splitlines()[0],
                frame=sanitize_log_data(raw),
            )
            await self._gateway.send_error(connection_id, "Invalid message format.")
            return False

        handler = self._handlers.get(frame.event)
        if handler is None:
            self._rejected += 1
            logger.warning("Unknown event", connection_id=connection_id, event=frame.event[:64])
            await self._gateway.send_error(connection_id, f"Unknown event: {frame.event[:64]}")
            return False

        try:
            await handler(connection_id, frame.data)
        except ValidationError as e:
            self._rejected += 1
            logger.warning(
                "Invalid payload",
                connection_id=connection_id,
                event=frame.event,
                errors=e.error_count(),
            )
            await self._gateway.send_error(connection_id, f"Invalid payload for {frame.event}.")
            return False
        except Exception as e:
            self._failed += 1
            logger.error(
                "Error handling event",
                connection_id=connection_id,
                event=frame.event,
                error=str(e),
                exc_info=True,
            )
            await self._gateway.send_error(connection_id, "An unexpected error occurred.")
            return False

        self._dispatched += 1
        return True

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _on_join(self, connection_id: str, data: Any) -> None:
        payload = JoinPayload.model_validate(data or {})
        await self._gateway.join(connection_id, payload.room_id, payload.username)

    async def _on_send_message(self, connection_id: str, data: Any) -> None:
        # Plain string bodies are accepted as well as {"message": ...}
        payload = (
            SendMessagePayload(message=data)
            if isinstance(data, str)
            else SendMessagePayload.model_validate(data or {})
        )
        await self._gateway.send_message(connection_id, payload.message)

    async def _on_typing(self, connection_id: str, data: Any) -> None:
        payload = (
            TypingPayload(isTyping=data)
            if isinstance(data, bool)
            else TypingPayload.model_validate(data or {})
        )
        await self._gateway.typing(connection_id, payload.is_typing)

    async def _on_create_room(self, connection_id: str, data: Any) -> None:
        payload = CreateRoomPayload.model_validate(data or {})
        await self._gateway.create_room(connection_id, payload.room_id, payload.room_name)

    async def _on_get_rooms(self, connection_id: str, data: Any) -> None:
        await self._gateway.get_rooms(connection_id)

    async def _on_get_message_history(self, connection_id: str, data: Any) -> None:
        payload = RoomRefPayload.parse(data)
        await self._gateway.get_message_history(connection_id, payload.room_id)

    async def _on_leave_room(self, connection_id: str, data: Any) -> None:
        payload = RoomRefPayload.parse(data)
        await self._gateway.leave_room(connection_id, payload.room_id)

    async def _on_pong(self, connection_id: str, data: Any) -> None:
        await self._gateway.pong(connection_id)

    def get_stats(self) -> dict[str, int]:
        return {
            "dispatched": self._dispatched,
            "rejected": self._rejected,
            "failed": self._failed,
        }

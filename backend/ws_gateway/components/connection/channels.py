"""
Channel Hub.

Owns the transport side of the gateway: the sender of every live connection
and the room channels they are subscribed to. Every frame has the shape
``{"event": <name>, "data": <payload>}``.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

from starlette.websockets import WebSocketState

from shared.config.logging import get_logger
from ws_gateway.components.core.constants import WSCloseCode, WSConstants

logger = get_logger(__name__)


class Sender(Protocol):
    """The subset of a Starlette WebSocket the hub needs."""

    async def send_json(self, data: Any, mode: str = "text") -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


def is_sender_connected(sender: Sender) -> bool:
    """
    Check if a WebSocket is still in connected state before sending.
    Senders without Starlette state attributes are assumed connected.
    """
    client_state = getattr(sender, "client_state", None)
    application_state = getattr(sender, "application_state", None)
    if client_state is None or application_state is None:
        return True
    return client_state == WebSocketState.CONNECTED and application_state == WebSocketState.CONNECTED


def make_frame(event: str, data: Any) -> dict[str, Any]:
    return {"event": event, "data": data}


class ChannelHub:
    """
    Connection id -> sender map plus room channel -> connection ids.

    Broadcasts fan out concurrently in batches. A recipient whose send fails
    is logged and dropped from the hub; the broadcast itself never fails.
    """

    def __init__(self, batch_size: int = 50, send_timeout: float = WSConstants.SEND_TIMEOUT):
        self._senders: dict[str, Sender] = {}
        self._channels: dict[str, set[str]] = {}
        self._subscriptions: dict[str, set[str]] = {}
        self._batch_size = batch_size
        self._send_timeout = send_timeout

        # Metrics
        self._frames_sent = 0
        self._send_failures = 0
        self._broadcasts = 0

    @property
    def connection_count(self) -> int:
        return len(self._senders)

    def has(self, connection_id: str) -> bool:
        return connection_id in self._senders

    def connection_ids(self) -> list[str]:
        return list(self._senders)

    # =========================================================================
    # Registration
    # =========================================================================

    def add(self, connection_id: str, sender: Sender) -> None:
        self._senders[connection_id] = sender
        self._subscriptions.setdefault(connection_id, set())

    def discard(self, connection_id: str) -> Sender | None:
        """Forget a connection and unsubscribe it from every channel."""
        for room in self._subscriptions.pop(connection_id, set()):
            members = self._channels.get(room)
            if members is not None:
                members.discard(connection_id)
                if not members:
                    del self._channels[room]
        return self._senders.pop(connection_id, None)

    def subscribe(self, connection_id: str, room: str) -> None:
        if connection_id not in self._senders:
            return
        self._channels.setdefault(room, set()).add(connection_id)
        self._subscriptions.setdefault(connection_id, set()).add(room)

    def unsubscribe(self, connection_id: str, room: str) -> None:
        members = self._channels.get(room)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._channels[room]
        subscriptions = self._subscriptions.get(connection_id)
        if subscriptions is not None:
            subscriptions.discard(room)

    def members(self, room: str) -> set[str]:
        """Connection ids subscribed to a room channel (copy)."""
        return set(self._channels.get(room, ()))

    def subscriptions(self, connection_id: str) -> set[str]:
        return set(self._subscriptions.get(connection_id, ()))

    # =========================================================================
    # Sending
    # =========================================================================

    async def emit(self, connection_id: str, event: str, data: Any) -> bool:
        """
        Send one frame to one connection.

        Returns:
            True if sent, False if the connection is unknown or the send failed.
        """
        sender = self._senders.get(connection_id)
        if sender is None:
            return False
        return await self._send(connection_id, sender, make_frame(event, data))

    async def emit_to_room(
        self,
        room: str,
        event: str,
        data: Any,
        exclude: str | None = None,
    ) -> int:
        """
        Send one frame to every connection subscribed to a room.

        Args:
            room: Room channel.
            event: Event name.
            data: JSON-serializable payload.
            exclude: Connection id that should not receive the frame.

        Returns:
            Number of connections that received the frame.
        """
        targets = [cid for cid in self._channels.get(room, ()) if cid != exclude]
        return await self._broadcast(targets, make_frame(event, data), context=f"room:{room}")

    async def emit_to_all(self, event: str, data: Any) -> int:
        """Send one frame to every live connection."""
        return await self._broadcast(list(self._senders), make_frame(event, data), context="all")

    async def emit_to_many(self, connection_ids: list[str], event: str, data: Any) -> int:
        return await self._broadcast(connection_ids, make_frame(event, data), context="many")

    async def close(
        self,
        connection_id: str,
        code: int = WSCloseCode.NORMAL,
        reason: str = "",
    ) -> None:
        """Close a connection's socket. Errors from already-closed sockets are ignored."""
        sender = self._senders.get(connection_id)
        if sender is None:
            return
        try:
            await asyncio.wait_for(
                sender.close(code=code, reason=reason[: WSConstants.MAX_CLOSE_REASON_LENGTH]),
                timeout=WSConstants.CLOSE_TIMEOUT,
            )
        except (ConnectionError, RuntimeError, OSError, asyncio.TimeoutError) as e:
            logger.debug("Close failed", connection_id=connection_id, error=str(e))

    async def _send(self, connection_id: str, sender: Sender, frame: dict[str, Any]) -> bool:
        if not is_sender_connected(sender):
            self._drop(connection_id, "not connected")
            return False
        try:
            await asyncio.wait_for(sender.send_json(frame), timeout=self._send_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._drop(connection_id, f"{type(e).__name__}: {e}")
            return False
        self._frames_sent += 1
        return True

    async def _broadcast(self, connection_ids: list[str], frame: dict[str, Any], context: str) -> int:
        if not connection_ids:
            return 0

        self._broadcasts += 1
        sent = 0
        for i in range(0, len(connection_ids), self._batch_size):
            batch = [
                (cid, self._senders[cid])
                for cid in connection_ids[i : i + self._batch_size]
                if cid in self._senders
            ]
            results = await asyncio.gather(
                *[self._send(cid, sender, frame) for cid, sender in batch],
                return_exceptions=True,
            )
            for (cid, _), result in zip(batch, results):
                if result is True:
                    sent += 1
                elif isinstance(result, BaseException):
                    self._drop(cid, str(result))

        logger.debug("Broadcast sent", context=context, event=frame["event"], sent=sent)
        return sent

    def _drop(self, connection_id: str, reason: str) -> None:
        self._send_failures += 1
        if self.discard(connection_id) is not None:
            logger.warning("Dropping unreachable connection", connection_id=connection_id, reason=reason)

    def get_stats(self) -> dict[str, int]:
        return {
            "connections": len(self._senders),
            "channels": len(self._channels),
            "frames_sent": self._frames_sent,
            "send_failures": self._send_failures,
            "broadcasts": self._broadcasts,
        }

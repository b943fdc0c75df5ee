"""
WebSocket Endpoint Mixins.

Each mixin handles a single concern for WebSocket endpoints.

Mixins:
    MessageValidationMixin: Frame size checks
    OriginValidationMixin: WebSocket origin header validation
    ConnectionLifecycleMixin: Connect/disconnect audit logging

Usage:
    class MyEndpoint(MessageValidationMixin, OriginValidationMixin, WebSocketEndpointBase):
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from fastapi import WebSocket

from shared.config.logging import audit_ws_connection, get_logger
from shared.config.settings import settings
from ws_gateway.components.core.constants import WSCloseCode, validate_websocket_origin

if TYPE_CHECKING:
    from ws_gateway.components.core.context import ConnectionContext

logger = get_logger(__name__)


class HasWebSocket(Protocol):
    """Protocol for classes with websocket attribute."""

    websocket: WebSocket
    endpoint_name: str
    context: ConnectionContext | None


# =============================================================================
# MessageValidationMixin
# =============================================================================


class MessageValidationMixin:
    """
    Rejects frames larger than settings.ws_max_message_size.

    Requires:
        - self.websocket: WebSocket
        - self.endpoint_name: str
        - self.context: ConnectionContext | None
    """

    async def validate_message_size(self: HasWebSocket, data: str) -> bool:
        """
        Returns:
            True if valid, False if too large (connection closed).
        """
        max_size = settings.ws_max_message_size
        if len(data) > max_size:
            logger.warning(
                "Message size exceeded limit",
                endpoint=self.endpoint_name,
                connection_id=self.context.connection_id if self.context else None,
                size=len(data),
                max_size=max_size,
            )
            await self.websocket.close(code=WSCloseCode.MESSAGE_TOO_BIG, reason="Message too large")
            return False
        return True


# =============================================================================
# OriginValidationMixin
# =============================================================================


class OriginValidationMixin:
    """
    WebSocket origin header validation.

    Requires:
        - self.websocket: WebSocket
    """

    def validate_origin(self: HasWebSocket) -> bool:
        return validate_websocket_origin(self.websocket.headers.get("origin"), settings)

    def get_origin(self: HasWebSocket) -> str | None:
        return self.websocket.headers.get("origin")


# =============================================================================
# ConnectionLifecycleMixin
# =============================================================================


class ConnectionLifecycleMixin:
    """
    Standardized lifecycle logging.

    Requires:
        - self.endpoint_name: str
        - self.context: ConnectionContext | None
    """

    def log_connect(self: HasWebSocket) -> None:
        audit = self.context.to_audit_dict() if self.context else {"endpoint": self.endpoint_name}
        logger.info("Chat client connected", **audit)
        audit_ws_connection("CONNECT", **audit)

    def log_disconnect(self: HasWebSocket, reason: str = "client_disconnect") -> None:
        audit = self.context.to_audit_dict() if self.context else {"endpoint": self.endpoint_name}
        duration = round(self.context.duration, 3) if self.context else None
        logger.info("Chat client disconnected", reason=reason, duration=duration, **audit)
        audit_ws_connection("DISCONNECT", reason=reason, duration=duration, **audit)

    def log_connect_rejected(self: HasWebSocket, reason: str) -> None:
        origin = self.websocket.headers.get("origin")
        logger.warning("Connection rejected", endpoint=self.endpoint_name, origin=origin, reason=reason)
        audit_ws_connection("REJECTED", endpoint=self.endpoint_name, origin=origin, reason=reason)


__all__ = [
    "MessageValidationMixin",
    "OriginValidationMixin",
    "ConnectionLifecycleMixin",
    "HasWebSocket",
]

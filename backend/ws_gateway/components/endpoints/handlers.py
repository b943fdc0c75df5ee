"""
Chat WebSocket endpoint.
"""

from __future__ import annotations

from fastapi import WebSocket

from shared.config.logging import get_logger
from shared.config.settings import settings
from ws_gateway.components.core.constants import WSCloseCode
from ws_gateway.components.endpoints.base import WebSocketEndpointBase
from ws_gateway.components.events.router import EventRouter
from ws_gateway.gateway import RoomBroadcastGateway

logger = get_logger(__name__)


class ChatEndpoint(WebSocketEndpointBase):
    """
    WebSocket endpoint for chat clients.

    Features:
    - Origin validation
    - Global connection ceiling (close 1013 when full)
    - Frames dispatched through the EventRouter
    """

    def __init__(
        self,
        websocket: WebSocket,
        gateway: RoomBroadcastGateway,
        router: EventRouter,
        max_connections: int | None = None,
    ):
        super().__init__(websocket, endpoint_name="/ws/chat")
        self.gateway = gateway
        self.router = router
        self.max_connections = (
            max_connections if max_connections is not None else settings.ws_max_total_connections
        )

    async def admit(self) -> bool:
        if not self.validate_origin():
            self.log_connect_rejected("invalid_origin")
            await self.websocket.close(code=WSCloseCode.FORBIDDEN, reason="Origin not allowed")
            return False

        if self.gateway.connection_count >= self.max_connections:
            self.log_connect_rejected("server_full")
            await self.websocket.accept()
            await self.websocket.close(code=WSCloseCode.SERVER_OVERLOADED, reason="Server at capacity")
            return False

        return True

    async def register_connection(self) -> None:
        await self.gateway.connect(self.connection_id, self.websocket)

    async def unregister_connection(self) -> None:
        await self.gateway.disconnect(self.connection_id)

    async def handle_message(self, data: str) -> None:
        await self.router.dispatch(self.connection_id, data)

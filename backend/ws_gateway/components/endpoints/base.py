"""
WebSocket Endpoint Base Class.

Drives the lifecycle shared by gateway endpoints: admission, accept,
registration, the receive loop and cleanup.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from shared.config.logging import get_logger
from shared.infrastructure.correlation import correlation_context
from ws_gateway.components.core.context import ConnectionContext
from ws_gateway.components.endpoints.mixins import (
    ConnectionLifecycleMixin,
    MessageValidationMixin,
    OriginValidationMixin,
)

logger = get_logger(__name__)


class WebSocketEndpointBase(
    MessageValidationMixin,
    OriginValidationMixin,
    ConnectionLifecycleMixin,
    ABC,
):
    """
    Base class for WebSocket endpoints.

    Subclasses implement:
    - admit(): Decide whether the connection may proceed
    - register_connection(): Hand the accepted socket to the gateway
    - unregister_connection(): Tear it down
    - handle_message(): Process one text frame

    Usage:
        endpoint = ChatEndpoint(websocket, gateway, router)
        await endpoint.run()
    """

    def __init__(self, websocket: WebSocket, endpoint_name: str):
        """
        Args:
            websocket: The WebSocket connection.
            endpoint_name: Path used in logs (e.g., "/ws/chat").
        """
        self.websocket = websocket
        self.endpoint_name = endpoint_name
        self.connection_id = uuid.uuid4().hex
        self.context: ConnectionContext | None = None
        self._is_running = False

    @abstractmethod
    async def admit(self) -> bool:
        """
        Returns:
            False if the connection must be refused. The implementation is
            responsible for closing the socket in that case.
        """

    @abstractmethod
    async def register_connection(self) -> None: ...

    @abstractmethod
    async def unregister_connection(self) -> None: ...

    @abstractmethod
    async def handle_message(self, data: str) -> None: ...

    async def run(self) -> None:
        """
        Run the complete lifecycle:
        1. Admission (origin, capacity)
        2. Accept and register
        3. Message loop
        4. Unregister on disconnect
        """
        with correlation_context(self.connection_id):
            if not await self.admit():
                return

            await self.websocket.accept()
            self.context = ConnectionContext.from_websocket(
                self.websocket, self.connection_id, self.endpoint_name
            )
            await self.register_connection()
            self.log_connect()

            self._is_running = True
            reason = "client_disconnect"
            try:
                await self._message_loop()
            except WebSocketDisconnect:
                pass
            except RuntimeError as e:
                # Raised by Starlette when the server side already closed the socket
                reason = "server_closed"
                logger.debug("Receive on closed socket", connection_id=self.connection_id, error=str(e))
            finally:
                self._is_running = False
                await self.unregister_connection()
                self.log_disconnect(reason)

    async def _message_loop(self) -> None:
        while self._is_running:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            data = message.get("text")
            if data is None:
                raw = message.get("bytes") or b""
                data = raw.decode("utf-8", errors="replace")

            if not await self.validate_message_size(data):
                break

            await self.handle_message(data)

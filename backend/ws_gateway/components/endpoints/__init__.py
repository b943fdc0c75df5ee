"""
WebSocket endpoint components.

Base class, mixins, and the chat endpoint handler.
"""

from ws_gateway.components.endpoints.base import WebSocketEndpointBase
from ws_gateway.components.endpoints.handlers import ChatEndpoint
from ws_gateway.components.endpoints.mixins import (
    ConnectionLifecycleMixin,
    MessageValidationMixin,
    OriginValidationMixin,
)

__all__ = [
    "WebSocketEndpointBase",
    "MessageValidationMixin",
    "OriginValidationMixin",
    "ConnectionLifecycleMixin",
    "ChatEndpoint",
]

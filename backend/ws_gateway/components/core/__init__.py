"""
Core WebSocket Gateway components.

Constants and connection context. Singletons live in
ws_gateway.components.core.dependencies.
"""

from ws_gateway.components.core.constants import (
    DEFAULT_ALLOWED_ORIGINS,
    WSCloseCode,
    WSConstants,
    validate_websocket_origin,
)
from ws_gateway.components.core.context import ConnectionContext, sanitize_log_data

__all__ = [
    # Constants
    "WSCloseCode",
    "WSConstants",
    "DEFAULT_ALLOWED_ORIGINS",
    "validate_websocket_origin",
    # Context
    "ConnectionContext",
    "sanitize_log_data",
]

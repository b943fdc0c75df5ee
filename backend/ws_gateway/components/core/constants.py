"""
WebSocket Gateway Constants.

Centralized constants with documentation explaining each value.
Runtime-tunable values live in shared.config.settings; the values here are
protocol details and internal bounds.
"""

from enum import IntEnum
from typing import Final

from shared.config.logging import get_logger

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "DEFAULT_ALLOWED_ORIGINS",
    "validate_websocket_origin",
]

logger = get_logger(__name__)


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the gateway.

    Standard codes (1000-1999) from RFC 6455.
    Custom codes (4000-4999) for application-specific errors.
    """

    # Standard codes (RFC 6455)
    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down or client navigating away
    POLICY_VIOLATION = 1008  # Generic policy violation
    MESSAGE_TOO_BIG = 1009  # Frame above ws_max_message_size
    SERVER_ERROR = 1011  # Unexpected server error
    SERVER_OVERLOADED = 1013  # ws_max_total_connections reached

    # Custom application codes (4000-4999)
    FORBIDDEN = 4003  # Origin not in the allowed list
    HEARTBEAT_TIMEOUT = 4008  # No pong before the heartbeat deadline


class WSConstants:
    """
    WebSocket Gateway operational constants.

    Values that operators tune (ping interval, pong timeout, rate limits,
    retention) are in Settings. These are fixed implementation details.
    """

    # CLOSE_TIMEOUT: 2 seconds
    # Upper bound on waiting for a close frame to be written to a socket
    # that may already be half-open.
    CLOSE_TIMEOUT: Final[float] = 2.0

    # SEND_TIMEOUT: 5 seconds
    # A recipient that cannot take a frame within this time is dropped from
    # the hub so one slow socket does not stall a room broadcast.
    SEND_TIMEOUT: Final[float] = 5.0

    # MAX_TRACKED_IDENTITIES: 5000
    # Rate limiter states beyond this bound trigger an eager stale cleanup.
    MAX_TRACKED_IDENTITIES: Final[int] = 5000

    # MAX_CLOSE_REASON_LENGTH: 123 bytes is the RFC 6455 limit for close reasons.
    MAX_CLOSE_REASON_LENGTH: Final[int] = 123


# Default development origins for the chat frontend
DEFAULT_ALLOWED_ORIGINS: Final[tuple[str, ...]] = (
    "http://localhost:3000", "http://localhost:5173",
    "http://127.0.0.1:3000", "http://127.0.0.1:5173",
)


def validate_websocket_origin(origin: str | None, settings: object) -> bool:
    """
    Validate WebSocket origin header against allowed origins.

    Args:
        origin: The Origin header value, or None if not present.
        settings: Settings object with environment and allowed_origins attributes.

    Returns:
        True if origin is allowed, False otherwise.
    """
    allowed_origins_str = getattr(settings, "allowed_origins", None)
    if allowed_origins_str:
        allowed = [o.strip() for o in allowed_origins_str.split(",") if o.strip()]
    else:
        allowed = list(DEFAULT_ALLOWED_ORIGINS)

    if not origin:
        # Non-browser clients send no Origin; only tolerated outside production
        if getattr(settings, "environment", "production") != "production":
            return True
        logger.warning("WebSocket connection rejected: missing Origin header in production")
        return False

    if origin in allowed:
        return True

    # Development allows any origin when none are configured
    if not allowed_origins_str and getattr(settings, "environment", "production") == "development":
        return True

    logger.warning(
        "WebSocket connection rejected: origin not in allowed list",
        origin=origin,
        allowed_count=len(allowed),
    )
    return False

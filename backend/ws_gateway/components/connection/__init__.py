"""
Connection management components.

Transport channels, presence, heartbeat and rate limiting.
"""

from ws_gateway.components.connection.channels import ChannelHub, Sender
from ws_gateway.components.connection.heartbeat import HeartbeatMonitor, HeartbeatState
from ws_gateway.components.connection.presence import Identity, PresenceRegistry
from ws_gateway.components.connection.rate_limiter import IdentityRateLimiter, RateLimitState

__all__ = [
    "ChannelHub",
    "Sender",
    "HeartbeatMonitor",
    "HeartbeatState",
    "Identity",
    "PresenceRegistry",
    "IdentityRateLimiter",
    "RateLimitState",
]

"""
Event handling components.

Inbound payload models and the dispatching router.
"""

from ws_gateway.components.events.router import EventRouter
from ws_gateway.components.events.types import (
    ClientFrame,
    CreateRoomPayload,
    JoinPayload,
    RoomRefPayload,
    SendMessagePayload,
    TypingPayload,
)

__all__ = [
    "EventRouter",
    "ClientFrame",
    "JoinPayload",
    "SendMessagePayload",
    "TypingPayload",
    "CreateRoomPayload",
    "RoomRefPayload",
]

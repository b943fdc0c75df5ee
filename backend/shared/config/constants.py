"""
Shared constants and enums for the chat backend.
Centralizes room names, event names and status values to avoid magic strings.
"""

from enum import Enum


# =============================================================================
# Rooms and authors
# =============================================================================

# Sentinel room for identities that are connected but not in any room
LOBBY_ROOM = "lobby"

# Author used for join/leave/creation notices
SYSTEM_USER = "system"

# Default author when a room is created before its creator has joined
ANONYMOUS_USER = "Anonymous"

# Rooms seeded on first start: (room_id, display name)
DEFAULT_ROOMS: tuple[tuple[str, str], ...] = (
    ("general", "General"),
    ("tech", "Tech"),
    ("random", "Random"),
)


def welcome_message(room_name: str) -> str:
    """Text of the welcome message seeded into a default room."""
    return f"Welcome to the {room_name} room!"


def joined_message(username: str) -> str:
    return f"{username} has joined the chat."


def left_message(username: str) -> str:
    return f"{username} has left the chat."


def room_created_message(room_name: str, creator: str) -> str:
    return f"{room_name} room created by {creator}!"


# =============================================================================
# Message flow
# =============================================================================


class FlowStatus(str, Enum):
    """Lifecycle status of a message inside the flow tracker."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


# =============================================================================
# WebSocket events
# =============================================================================


class ClientEvent:
    """Events sent by clients over the chat socket."""

    JOIN = "join"
    SEND_MESSAGE = "sendMessage"
    TYPING = "typing"
    CREATE_ROOM = "createRoom"
    GET_ROOMS = "getRooms"
    GET_MESSAGE_HISTORY = "getMessageHistory"
    LEAVE_ROOM = "leaveRoom"
    PONG = "pong"

    ALL: frozenset[str] = frozenset({
        JOIN, SEND_MESSAGE, TYPING, CREATE_ROOM,
        GET_ROOMS, GET_MESSAGE_HISTORY, LEAVE_ROOM, PONG,
    })


class ServerEvent:
    """Events emitted by the gateway."""

    MESSAGE = "message"
    ROOM_DATA = "roomData"
    MESSAGE_HISTORY = "messageHistory"
    USER_TYPING = "userTyping"
    USER_STATUS = "userStatus"
    ROOM_CREATED = "roomCreated"
    AVAILABLE_ROOMS = "availableRooms"
    ROOM_CREATE_SUCCESS = "roomCreateSuccess"
    ERROR = "error"
    PING = "ping"


# =============================================================================
# Limits
# =============================================================================


class Limits:
    """Input limits for client-supplied values."""

    USERNAME_MAX_LENGTH = 50
    ROOM_ID_MAX_LENGTH = 64
    ROOM_NAME_MAX_LENGTH = 100
    MESSAGE_MAX_LENGTH = 4000

    # Reporting surface pagination
    QUERY_LIMIT_DEFAULT = 100
    QUERY_LIMIT_MAX = 500

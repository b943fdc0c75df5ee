"""
Shared Pydantic schemas used across the application.

Wire payloads use camelCase field names; Python attributes stay snake_case.
Serialize with ``model_dump(by_alias=True, mode="json")`` (see ``to_wire``).
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Common Types
# =============================================================================

FlowStatusName = Literal["pending", "processed", "failed"]


class WireModel(BaseModel):
    """Base for payloads sent to clients."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# Chat Schemas
# =============================================================================


class MessageOut(WireModel):
    """A chat or system message as seen by clients."""

    id: str
    user: str
    text: str
    room: str
    timestamp: datetime
    is_system: bool = Field(default=False, alias="isSystem")


class RoomOut(WireModel):
    """Room metadata."""

    id: str
    name: str
    created_by: str = Field(alias="createdBy")
    created_at: datetime = Field(alias="createdAt")


class UserOut(WireModel):
    """Presence entry included in roomData."""

    id: str
    username: str
    room: str
    is_online: bool = Field(alias="isOnline")
    is_typing: bool = Field(alias="isTyping")
    connection_id: str | None = Field(default=None, alias="connectionId")


class RoomDataOut(WireModel):
    """Membership snapshot of a room."""

    room: str
    users: list[UserOut]


class UserTypingOut(WireModel):
    user_id: str = Field(alias="userId")
    username: str
    is_typing: bool = Field(alias="isTyping")


class UserStatusOut(WireModel):
    user_id: str = Field(alias="userId")
    username: str
    is_online: bool = Field(alias="isOnline")


class ErrorOut(WireModel):
    """Payload of the ``error`` event."""

    message: str
    timestamp: datetime


class PingOut(WireModel):
    timestamp: datetime


# =============================================================================
# Reporting Schemas
# =============================================================================


class QueueStatsOut(WireModel):
    """Aggregate message-flow statistics."""

    total_messages: int = Field(alias="totalMessages")
    pending_messages: int = Field(alias="pendingMessages")
    processed_messages: int = Field(alias="processedMessages")
    failed_messages: int = Field(alias="failedMessages")
    average_processing_time: float = Field(alias="averageProcessingTime")  # ms
    messages_per_second: float = Field(alias="messagesPerSecond")
    active_rooms: int = Field(alias="activeRooms")
    active_users: int = Field(alias="activeUsers")


class QueueMessageOut(WireModel):
    """A stored message enriched with its flow-tracker status."""

    id: str
    user: str
    room: str
    text: str
    timestamp: datetime
    status: FlowStatusName
    processing_time: float | None = Field(default=None, alias="processingTime")  # ms
    error: str | None = None


class ResetOut(BaseModel):
    success: bool = True

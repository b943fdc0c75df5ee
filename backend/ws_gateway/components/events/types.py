"""
Inbound event payloads for the chat WebSocket.

Every client frame is ``{"event": <name>, "data": <payload>}``. Payloads are
validated with pydantic; missing string fields default to empty so the
gateway can answer with a domain error instead of a schema error.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.config.constants import Limits


class InboundPayload(BaseModel):
    """Base for client payloads: camelCase on the wire, unknown keys ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ClientFrame(BaseModel):
    """Envelope of every client frame."""

    model_config = ConfigDict(extra="ignore")

    event: str = Field(min_length=1)
    data: Any = None


class JoinPayload(InboundPayload):
    room_id: str = Field(default="", alias="roomId", max_length=Limits.ROOM_ID_MAX_LENGTH)
    username: str = Field(default="", max_length=Limits.USERNAME_MAX_LENGTH)


class SendMessagePayload(InboundPayload):
    message: str = Field(default="", max_length=Limits.MESSAGE_MAX_LENGTH)


class TypingPayload(InboundPayload):
    is_typing: bool = Field(default=False, alias="isTyping")


class CreateRoomPayload(InboundPayload):
    room_id: str = Field(default="", alias="roomId", max_length=Limits.ROOM_ID_MAX_LENGTH)
    room_name: str = Field(default="", alias="roomName", max_length=Limits.ROOM_NAME_MAX_LENGTH)


class RoomRefPayload(InboundPayload):
    """
    A room reference. Clients send either a bare string or an object with
    ``roomId`` (``room`` is accepted as well).
    """

    room_id: str = Field(default="", alias="roomId", max_length=Limits.ROOM_ID_MAX_LENGTH)

    @classmethod
    def parse(cls, data: Any) -> RoomRefPayload:
        if isinstance(data, str):
            return cls(roomId=data)
        if isinstance(data, dict) and "roomId" not in data and "room" in data:
            return cls(roomId=data["room"])
        return cls.model_validate(data if data is not None else {})

    @field_validator("room_id", mode="before")
    @classmethod
    def _coerce_none(cls, value: Any) -> Any:
        return "" if value is None else value

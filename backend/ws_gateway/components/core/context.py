"""
Connection context for audit logging.

Bundles the metadata of one chat WebSocket so audit calls do not repeat
the same parameters.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fastapi import WebSocket


# ASCII control characters, zero-width marks and bidi overrides
_CONTROL_CHAR_PATTERN = re.compile(
    r"[\x00-\x1f\x7f-\x9f"
    r"\u200b-\u200f"
    r"\u202a-\u202e"
    r"\u2066-\u2069"
    r"\ufeff]"
)


def sanitize_log_data(data: str, max_length: int = 100) -> str:
    """
    Sanitize client-provided text before logging.

    Truncates first, then strips control characters and escapes quotes,
    backslashes and line breaks.

    Args:
        data: Raw client data.
        max_length: Maximum length to include in logs.

    Returns:
        Sanitized, truncated string.
    """
    was_truncated = len(data) > max_length
    sanitized = _CONTROL_CHAR_PATTERN.sub("", data[:max_length])
    sanitized = (
        sanitized.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return sanitized + "..." if was_truncated else sanitized


@dataclass
class ConnectionContext:
    """
    Metadata of one chat connection.

    Usage:
        ctx = ConnectionContext.from_websocket(websocket, connection_id, "/ws/chat")
        audit_ws_connection("CONNECT", **ctx.to_audit_dict())
    """

    connection_id: str
    endpoint: str
    origin: str | None = None
    client: str | None = None
    connected_at: float = field(default_factory=time.time)

    @classmethod
    def from_websocket(cls, websocket: WebSocket, connection_id: str, endpoint: str) -> ConnectionContext:
        client = websocket.client
        return cls(
            connection_id=connection_id,
            endpoint=endpoint,
            origin=websocket.headers.get("origin"),
            client=f"{client.host}:{client.port}" if client else None,
        )

    @property
    def duration(self) -> float:
        return time.time() - self.connected_at

    def to_audit_dict(self) -> dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "connection_id": self.connection_id,
            "origin": self.origin,
            "client": self.client,
        }

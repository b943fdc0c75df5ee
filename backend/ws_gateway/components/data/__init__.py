"""
Data access components.
"""

from ws_gateway.components.data.chat_store import (
    ChatStore,
    MessageRecord,
    RoomRecord,
    get_chat_store,
    new_message_id,
    reset_chat_store,
)

__all__ = [
    "ChatStore",
    "MessageRecord",
    "RoomRecord",
    "get_chat_store",
    "new_message_id",
    "reset_chat_store",
]

"""
SQLAlchemy ORM Models Package.

- base: Base class and datetime helpers
- chat: ChatUser, ChatRoom, ChatMessage
"""

from .base import Base, as_utc, utcnow
from .chat import ChatUser, ChatRoom, ChatMessage

__all__ = [
    "Base",
    "as_utc",
    "utcnow",
    "ChatUser",
    "ChatRoom",
    "ChatMessage",
]

"""
Repository Pattern implementation.
Centralizes data access behind session-bound repositories.

Usage:
    from rest_api.repositories import ChatRepository, MessageFilters

    repo = ChatRepository(db)
    rooms = repo.list_rooms()
    recent = repo.list_recent_messages(MessageFilters(room="general", limit=20))
"""

from .base import BaseRepository, RepositoryFilters
from .chat import ChatRepository, MessageFilters

__all__ = [
    "BaseRepository",
    "RepositoryFilters",
    "ChatRepository",
    "MessageFilters",
]

"""
Utilities module: Exceptions, schemas.
"""

from shared.utils.exceptions import (
    ChatError,
    StorageError,
    RoomAlreadyExistsError,
    AppException,
    ValidationError,
)
from shared.utils.schemas import (
    MessageOut,
    RoomOut,
    UserOut,
    ErrorOut,
    QueueStatsOut,
    QueueMessageOut,
)

__all__ = [
    # exceptions
    "ChatError",
    "StorageError",
    "RoomAlreadyExistsError",
    "AppException",
    "ValidationError",
    # schemas
    "MessageOut",
    "RoomOut",
    "UserOut",
    "ErrorOut",
    "QueueStatsOut",
    "QueueMessageOut",
]

"""
Centralized exceptions for consistent error handling.

Two families live here:
- ChatError and subclasses: raised by the storage layer and the gateway,
  turned into ``error`` events for the client that caused them.
- AppException and subclasses: HTTP exceptions with automatic logging,
  raised by the REST routers.

Usage:
    from shared.utils.exceptions import StorageError, RoomAlreadyExistsError

    raise RoomAlreadyExistsError("general")
    raise ValidationError("start_date must be before end_date")
"""

from typing import Any

from fastapi import HTTPException, status

from shared.config.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Chat domain errors
# =============================================================================


class ChatError(Exception):
    """Base class for errors reported back to a chat client."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StorageError(ChatError):
    """A persistence call failed or timed out."""

    def __init__(self, operation: str, message: str | None = None):
        super().__init__(message or f"Storage operation '{operation}' failed")
        self.operation = operation


class RoomAlreadyExistsError(StorageError):
    """A room with the same normalized id already exists."""

    def __init__(self, room_id: str):
        super().__init__("create_room", "Room already exists")
        self.room_id = room_id


# =============================================================================
# HTTP errors
# =============================================================================


class AppException(HTTPException):
    """
    Base HTTP exception with automatic logging.

    All HTTP exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("start_date must be before end_date")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )

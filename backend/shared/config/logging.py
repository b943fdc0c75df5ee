"""
Centralized structured logging for the chat backend.

Built on the standard logging module. Records are rendered as one JSON object
per line when ``settings.log_json`` is on (the default in production) and as
coloured single lines otherwise.

Every record carries the correlation id of the HTTP request or WebSocket
connection that produced it (see shared.infrastructure.correlation), so all
lines of one chat connection can be grepped together.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
    "websockets": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "slowapi": logging.WARNING,
}


def _correlation_id(record: logging.LogRecord) -> str | None:
    value = getattr(record, "request_id", None)
    return value if value and value != "-" else None


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        correlation_id = _correlation_id(record)
        if correlation_id:
            entry["correlation_id"] = correlation_id

        data = getattr(record, "extra_data", None)
        if data:
            entry["data"] = data

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if settings.debug:
            entry["at"] = f"{record.module}:{record.funcName}:{record.lineno}"

        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Coloured, human-readable lines for local runs."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]

        correlation_id = _correlation_id(record)
        tag = f"{self.DIM}<{correlation_id[:8]}>{self.RESET} " if correlation_id else ""

        line = f"{color}{clock} {record.levelname:<8}{self.RESET} {tag}{record.name} - {record.getMessage()}"

        data = getattr(record, "extra_data", None)
        if data:
            line += f" {self.DIM}" + " ".join(f"{k}={v!r}" for k, v in data.items()) + self.RESET

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose keyword arguments become structured fields.

        logger.info("User joined room", connection_id=cid, room="general")
        logger.error("Error handling event", event="join", exc_info=True)

    ``exc_info``, ``stack_info`` and ``extra`` keep their standard meaning;
    every other keyword is attached to the record as ``extra_data``.
    """

    def _emit(self, level: int, msg: str, args: tuple, kwargs: dict[str, Any]) -> None:
        if not self.isEnabledFor(level):
            return
        exc_info = kwargs.pop("exc_info", None)
        stack_info = kwargs.pop("stack_info", False)
        extra = dict(kwargs.pop("extra", None) or {})
        extra["extra_data"] = kwargs or None
        self._log(level, msg, args, exc_info=exc_info, extra=extra, stack_info=stack_info, stacklevel=3)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.INFO, msg, args, kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.WARNING, msg, args, kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.ERROR, msg, args, kwargs)

    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.CRITICAL, msg, args, kwargs)


logging.setLoggerClass(StructuredLogger)


def resolve_log_level() -> int:
    """LOG_LEVEL when set, otherwise DEBUG in debug mode and INFO elsewhere."""
    if settings.log_level:
        level = logging.getLevelName(settings.log_level.upper())
        if isinstance(level, int):
            return level
    return logging.DEBUG if settings.debug else logging.INFO


def setup_logging() -> None:
    """
    Configure the root logger. Safe to call more than once; the previous
    handlers are replaced.
    """
    # Imported lazily: correlation imports fastapi, which must not load before settings
    from shared.infrastructure.correlation import CorrelationIdFilter

    level = resolve_log_level()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(StructuredFormatter() if settings.use_json_logs else DevelopmentFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> StructuredLogger:
    """
    Usage:
        from shared.config.logging import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)  # type: ignore


app_logger = get_logger("roomchat")

# Connection lifecycle events go to their own logger so they can be routed apart
connection_audit_logger = get_logger("roomchat.audit")


def audit_ws_connection(
    event_type: str,
    endpoint: str,
    connection_id: str | None = None,
    origin: str | None = None,
    reason: str | None = None,
    **extra: Any,
) -> None:
    """
    Record a WebSocket lifecycle event.

    Args:
        event_type: CONNECT, DISCONNECT, REJECTED or TIMED_OUT.
        endpoint: WebSocket endpoint path.
        connection_id: Connection id assigned by the endpoint.
        origin: Origin header value.
        reason: Why the connection was rejected or closed.
        **extra: Additional context (client address, duration, ...).
    """
    connection_audit_logger.info(
        f"ws {event_type.lower()}",
        event_type=event_type,
        endpoint=endpoint,
        connection_id=connection_id,
        origin=origin,
        reason=reason,
        **extra,
    )

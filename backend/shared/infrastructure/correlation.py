"""
Request Correlation.

Binds a correlation id to each HTTP request and each WebSocket connection so
every log line can be traced back to the request or socket that produced it.

HTTP requests reuse a well-formed incoming X-Request-ID header; WebSocket
connections use their connection id.
"""

import logging
import re
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Task-local correlation id; asyncio copies the context into each task
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Accepted client-supplied ids: short and free of characters that could forge log lines
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def get_request_id() -> str:
    """Correlation id bound to the current task, or an empty string."""
    return request_id_var.get()


def new_request_id(candidate: str | None = None) -> str:
    """Return ``candidate`` when it is an acceptable id, otherwise a fresh uuid4."""
    if candidate and _VALID_REQUEST_ID.match(candidate):
        return candidate
    return str(uuid.uuid4())


@contextmanager
def correlation_context(correlation_id: str) -> Iterator[str]:
    """
    Bind a correlation id for the duration of a block.

    Usage:
        with correlation_context(connection_id):
            await endpoint.run()
    """
    token = request_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        request_id_var.reset(token)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Binds a correlation id to every HTTP request and echoes it back in the
    X-Request-ID response header. WebSocket scopes pass through untouched;
    the chat endpoint binds its own id.
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = new_request_id(request.headers.get(self.HEADER_NAME))
        request.state.request_id = request_id

        with correlation_context(request_id):
            response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response


class CorrelationIdFilter(logging.Filter):
    """Copies the current correlation id onto each record as ``request_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True

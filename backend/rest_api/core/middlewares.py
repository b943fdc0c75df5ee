"""
HTTP middlewares for the FastAPI application.
Implements per-request access logging and request correlation.
"""

import time

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from shared.config.logging import get_logger
from shared.infrastructure.correlation import CorrelationIdMiddleware

access_logger = get_logger("roomchat.http")


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every HTTP request once it completes.

    Level follows the status class:
    - 5xx (or an unhandled exception): error
    - 4xx: warning
    - everything else: info

    WebSocket traffic does not pass through here.
    """

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        url = request.url.path
        if request.url.query:
            url = f"{url}?{request.url.query}"
        fields = {
            "method": request.method,
            "url": url,
            "ip": _client_ip(request),
            "user_agent": request.headers.get("user-agent", ""),
        }

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            access_logger.error(
                f"Server error 500 on {request.method} {url}",
                status_code=500,
                duration_ms=duration_ms,
                exc_info=True,
                **fields,
            )
            raise

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        status_code = response.status_code
        if status_code >= 500:
            log = access_logger.error
            msg = f"Server error {status_code} on {request.method} {url}"
        elif status_code >= 400:
            log = access_logger.warning
            msg = f"Client error {status_code} on {request.method} {url}"
        else:
            log = access_logger.info
            msg = f"Request completed: {request.method} {url} - {status_code} in {duration_ms}ms"
        log(msg, status_code=status_code, duration_ms=duration_ms, **fields)
        return response


def register_middlewares(app: FastAPI) -> None:
    """
    Register the HTTP middlewares on the FastAPI application.

    Order matters: middlewares are executed in reverse order of registration.
    CorrelationId runs first so access log records carry the request id.
    """
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

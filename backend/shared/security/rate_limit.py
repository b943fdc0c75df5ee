"""
HTTP rate limiting for the reporting endpoints, using slowapi.

Limits are keyed by client IP and kept in memory by default; set
RATE_LIMIT_STORAGE_URI to share counters between processes.

Chat message rate limiting is per identity and lives in
ws_gateway.components.connection.rate_limiter.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from shared.config.logging import get_logger
from shared.config.settings import settings

logger = get_logger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with the violated limit, e.g. ``{"detail": ..., "limit": "120 per 1 minute"}``."""
    logger.warning(
        "HTTP rate limit exceeded",
        path=request.url.path,
        client=get_remote_address(request),
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Try again later.", "limit": str(exc.detail)},
        headers={"Retry-After": str(exc.limit.limit.get_expiry())},
    )

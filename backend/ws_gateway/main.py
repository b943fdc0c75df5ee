"""
Roomchat application.

Serves the chat WebSocket (/ws/chat) together with the reporting
(/api/queue) and health (/api/health) HTTP endpoints. All of them share one
process, because presence and message flow state live in memory.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from rest_api.core.middlewares import register_middlewares
from rest_api.models import Base
from rest_api.routers.health import router as health_router
from rest_api.routers.queue import router as queue_router
from shared.config.logging import app_logger as logger, setup_logging
from shared.config.settings import settings
from shared.infrastructure.db import engine
from shared.security.rate_limit import limiter, rate_limit_exceeded_handler
from shared.utils.exceptions import StorageError
from ws_gateway.components.core.constants import DEFAULT_ALLOWED_ORIGINS
from ws_gateway.components.core.dependencies import (
    get_event_router,
    get_gateway,
    get_process_monitor,
)
from ws_gateway.components.endpoints.handlers import ChatEndpoint
from ws_gateway.gateway import RoomBroadcastGateway


# =============================================================================
# Lifespan and background tasks
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Starts:
    - Heartbeat ping loop and throughput refresh (owned by the gateway)
    - Maintenance task for rate limiter cleanup
    - Process monitor sampling (unless MONITORING_ENABLED is off)
    """
    setup_logging()
    logger.info(
        "Starting Roomchat",
        port=settings.ws_gateway_port,
        env=settings.environment,
    )

    for error in settings.validate_production_settings():
        logger.warning("Configuration problem", error=error)

    Base.metadata.create_all(bind=engine)

    gateway = get_gateway()
    try:
        await gateway.store.seed_default_rooms()
    except StorageError as e:
        logger.error("Failed to seed default rooms", error=str(e))

    gateway.start()
    maintenance_task = asyncio.create_task(run_maintenance(gateway), name="maintenance")

    monitor = get_process_monitor()
    if settings.monitoring_enabled:
        monitor.start()

    yield

    logger.info("Shutting down Roomchat")
    maintenance_task.cancel()
    try:
        await maintenance_task
    except asyncio.CancelledError:
        pass

    await monitor.stop()
    await gateway.stop()
    engine.dispose()
    logger.info("Database engine disposed")


async def run_maintenance(gateway: RoomBroadcastGateway) -> None:
    """Periodically drop rate limiter states that no longer matter."""
    while True:
        try:
            await asyncio.sleep(settings.maintenance_interval)
            result = gateway.run_maintenance()
            if result["rate_limiter_cleaned"] > 0:
                logger.debug("Cleaned up rate limiter entries", count=result["rate_limiter_cleaned"])
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Error in maintenance loop", error=str(e))


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Roomchat",
    description="Room-based real-time chat with message flow reporting",
    version="1.0.0",
    lifespan=lifespan,
)

# Default origins plus their HTTPS variants
DEFAULT_ORIGINS = list(DEFAULT_ALLOWED_ORIGINS) + [
    origin.replace("http://", "https://") for origin in DEFAULT_ALLOWED_ORIGINS
]

allowed_origins = (
    [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    if settings.allowed_origins
    else DEFAULT_ORIGINS
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID"],
)
register_middlewares(app)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

app.include_router(health_router)
app.include_router(queue_router)


# =============================================================================
# WebSocket Endpoints
# =============================================================================


@app.websocket("/ws/chat")
async def chat_websocket(websocket: WebSocket):
    """WebSocket endpoint for chat clients."""
    endpoint = ChatEndpoint(websocket, get_gateway(), get_event_router())
    await endpoint.run()


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ws_gateway.main:app",
        host="0.0.0.0",
        port=settings.ws_gateway_port,
        reload=True,
    )

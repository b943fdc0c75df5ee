"""
Health check endpoints.
Provides basic and detailed health status of the chat service and its
database, plus the recent process samples taken by the monitor.
"""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.security.rate_limit import limiter
from shared.utils.exceptions import ValidationError
from shared.utils.health import (
    HealthStatus,
    aggregate_health_checks,
    health_check_with_timeout,
)
from ws_gateway.components.core.dependencies import get_gateway, get_process_monitor
from ws_gateway.components.metrics.process_monitor import ProcessMonitor
from ws_gateway.gateway import RoomBroadcastGateway

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["health"])

SERVICE_NAME = "roomchat"


@router.get("/health")
def health_check(
    gateway: RoomBroadcastGateway = Depends(get_gateway),
    monitor: ProcessMonitor = Depends(get_process_monitor),
):
    """
    Basic health check endpoint.
    Returns service status, gateway counters and the latest process sample
    without touching the database.
    """
    try:
        stats = {
            "active_connections": gateway.connection_count,
            "identities": gateway.presence.count,
        }
    except Exception as e:
        logger.warning("Failed to get stats in health check", error=str(e))
        stats = {"error": "stats_unavailable"}
    return {
        "status": HealthStatus.HEALTHY.value,
        "service": SERVICE_NAME,
        "environment": settings.environment,
        **stats,
        "metrics": monitor.health_status(),
    }


@router.get("/health/detailed")
async def detailed_health_check(
    gateway: RoomBroadcastGateway = Depends(get_gateway),
    monitor: ProcessMonitor = Depends(get_process_monitor),
):
    """
    Detailed health check including database connectivity and component
    statistics. Returns 503 Service Unavailable when the database is down.
    """

    @health_check_with_timeout(timeout=3.0, component="database")
    async def check_database():
        await gateway.store.ping()
        return {"dialect": "sqlite" if settings.is_sqlite else "postgresql"}

    results = await aggregate_health_checks([check_database()])
    checks = {
        "service": SERVICE_NAME,
        "environment": settings.environment,
        "status": results["status"],
        "dependencies": results["components"],
        "gateway": gateway.get_stats(),
        "process": monitor.get_stats(),
    }

    if results["status"] != HealthStatus.HEALTHY.value:
        return JSONResponse(content=checks, status_code=503)
    return checks


def parse_window_minutes(raw: str | None) -> int:
    """Trailing window for /health/metrics; must be a positive integer."""
    if raw is None or not raw.strip():
        return settings.metrics_default_window_minutes
    try:
        minutes = int(raw)
    except ValueError:
        raise ValidationError("Invalid minutes parameter", minutes=raw) from None
    if minutes <= 0:
        raise ValidationError("Invalid minutes parameter", minutes=raw)
    return minutes


@router.get("/health/metrics")
@limiter.limit(settings.queue_api_rate_limit)
def process_metrics(
    request: Request,
    minutes: str | None = Query(None, description="Trailing window in minutes"),
    monitor: ProcessMonitor = Depends(get_process_monitor),
):
    """Process samples from the last ``minutes`` (default 5), oldest first."""
    window = parse_window_minutes(minutes)
    return [sample.to_dict() for sample in monitor.samples(window)]

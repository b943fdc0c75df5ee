"""
Message queue reporting endpoints.

Read-only view of the message flow tracker joined with stored history,
plus a reset action. Rate limited per client IP.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from rest_api.models import as_utc
from rest_api.services.queue_report import QueueReportService, StatusFilter
from shared.config.constants import Limits
from shared.config.settings import settings
from shared.security.rate_limit import limiter
from shared.utils.exceptions import ValidationError
from shared.utils.schemas import QueueMessageOut, QueueStatsOut, ResetOut
from ws_gateway.components.core.dependencies import get_flow_tracker, get_store

router = APIRouter(prefix="/api/queue", tags=["queue"])


def get_queue_report_service() -> QueueReportService:
    return QueueReportService(get_flow_tracker(), get_store())


LimitParam = Annotated[int, Query(ge=1, le=Limits.QUERY_LIMIT_MAX, description="Maximum number of rows")]
OffsetParam = Annotated[int, Query(ge=0, description="Rows to skip")]


@router.get("/stats", response_model=QueueStatsOut)
@limiter.limit(settings.queue_api_rate_limit)
async def get_queue_stats(
    request: Request,
    service: QueueReportService = Depends(get_queue_report_service),
):
    """Current message flow counters."""
    return service.stats()


@router.get("/messages", response_model=list[QueueMessageOut])
@limiter.limit(settings.queue_api_rate_limit)
async def get_recent_messages(
    request: Request,
    limit: LimitParam = Limits.QUERY_LIMIT_DEFAULT,
    offset: OffsetParam = 0,
    service: QueueReportService = Depends(get_queue_report_service),
):
    """Recent stored messages across all rooms, newest first."""
    return await service.recent_messages(limit=limit, offset=offset)


@router.get("/messages/filtered", response_model=list[QueueMessageOut])
@limiter.limit(settings.queue_api_rate_limit)
async def get_filtered_messages(
    request: Request,
    status: StatusFilter = Query("all"),
    room: str | None = Query(None, max_length=Limits.ROOM_ID_MAX_LENGTH),
    user: str | None = Query(None, max_length=Limits.USERNAME_MAX_LENGTH),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    limit: LimitParam = Limits.QUERY_LIMIT_DEFAULT,
    offset: OffsetParam = 0,
    service: QueueReportService = Depends(get_queue_report_service),
):
    """
    Stored messages filtered by room, user and time range. ``status=all``
    disables the status filter.
    """
    start = as_utc(start_date) if start_date else None
    end = as_utc(end_date) if end_date else None
    if start and end and start > end:
        raise ValidationError("startDate must be before endDate", start=str(start), end=str(end))
    return await service.filtered_messages(
        status=status,
        room=room,
        user=user,
        start=start,
        end=end,
        limit=limit,
        offset=offset,
    )


@router.get("/rooms", response_model=list[str])
@limiter.limit(settings.queue_api_rate_limit)
async def get_active_rooms(
    request: Request,
    service: QueueReportService = Depends(get_queue_report_service),
):
    """Rooms that have seen at least one tracked message."""
    return service.active_rooms()


@router.get("/users", response_model=list[str])
@limiter.limit(settings.queue_api_rate_limit)
async def get_active_users(
    request: Request,
    service: QueueReportService = Depends(get_queue_report_service),
):
    """Identities that have sent at least one tracked message."""
    return service.active_users()


@router.post("/reset", response_model=ResetOut)
@limiter.limit(settings.queue_api_rate_limit)
async def reset_queue_stats(
    request: Request,
    service: QueueReportService = Depends(get_queue_report_service),
):
    """Clear message counters. Active rooms and users are kept."""
    service.reset()
    return ResetOut()

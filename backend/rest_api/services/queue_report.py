"""
Queue Report Service.

Read side of the message flow: combines MessageFlowTracker counters with the
stored message history for the /api/queue endpoints.

Architecture:
    Router (thin) -> QueueReportService -> MessageFlowTracker + ChatStore

Storage failures degrade to empty results; the reporting surface never
returns a server error because the database is unavailable.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Literal

from shared.config.constants import FlowStatus
from shared.config.logging import get_logger
from shared.utils.exceptions import StorageError
from shared.utils.schemas import QueueMessageOut, QueueStatsOut

if TYPE_CHECKING:
    from ws_gateway.components.data.chat_store import ChatStore, MessageRecord
    from ws_gateway.components.metrics.flow_tracker import MessageFlowTracker

logger = get_logger(__name__)

StatusFilter = Literal["all", "pending", "processed", "failed"]


class QueueReportService:
    """
    Usage:
        service = QueueReportService(tracker, store)
        stats = service.stats()
        rows = await service.recent_messages(limit=20)
    """

    def __init__(self, tracker: MessageFlowTracker, store: ChatStore):
        self._tracker = tracker
        self._store = store

    def stats(self) -> QueueStatsOut:
        snapshot = self._tracker.stats()
        return QueueStatsOut(
            total_messages=snapshot.total_messages,
            pending_messages=snapshot.pending_messages,
            processed_messages=snapshot.processed_messages,
            failed_messages=snapshot.failed_messages,
            average_processing_time=snapshot.average_processing_time,
            messages_per_second=snapshot.messages_per_second,
            active_rooms=snapshot.active_rooms,
            active_users=snapshot.active_users,
        )

    async def recent_messages(self, limit: int = 100, offset: int = 0) -> list[QueueMessageOut]:
        """Stored messages, newest first, with their tracker status."""
        try:
            records = await self._store.list_recent_messages(limit=limit, offset=offset)
        except StorageError as e:
            logger.error("Failed to load recent messages", error=str(e))
            return []
        return [self._enrich(record) for record in records]

    async def filtered_messages(
        self,
        status: StatusFilter = "all",
        room: str | None = None,
        user: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[QueueMessageOut]:
        """
        Stored messages matching room/user/time filters. The status filter is
        applied to the fetched page, after limit and offset.
        """
        try:
            records = await self._store.list_recent_messages(
                room=room, user=user, start=start, end=end, limit=limit, offset=offset
            )
        except StorageError as e:
            logger.error("Failed to load filtered messages", error=str(e))
            return []

        rows = [self._enrich(record) for record in records]
        if status != "all":
            rows = [row for row in rows if row.status == status]
        return rows

    def active_rooms(self) -> list[str]:
        return self._tracker.active_rooms()

    def active_users(self) -> list[str]:
        return self._tracker.active_users()

    def reset(self) -> None:
        self._tracker.reset()

    def _enrich(self, record: MessageRecord) -> QueueMessageOut:
        entry = self._tracker.entry(record.id)
        status = entry.status if entry is not None else FlowStatus.PROCESSED
        return QueueMessageOut(
            id=record.id,
            user=record.user,
            room=record.room,
            text=record.text,
            timestamp=record.timestamp,
            status=status.value,
            processing_time=self._tracker.processing_time_ms(record.id),
            error=entry.error if entry is not None else None,
        )

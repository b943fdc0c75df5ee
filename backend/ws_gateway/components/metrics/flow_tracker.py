"""
Message Flow Tracker.

Records the lifecycle of every chat message (pending -> processed | failed)
and derives aggregate statistics for the reporting surface.

Throughput is "messages tracked in the trailing window / window seconds",
refreshed on a fixed interval by a background task, not an instantaneous rate.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass

from shared.config.constants import FlowStatus
from shared.config.logging import get_logger

logger = get_logger(__name__)


@dataclass
class FlowEntry:
    """Per-message tracking record."""

    start_time: float
    status: FlowStatus
    identity_id: str
    room_id: str
    error: str | None = None


@dataclass(frozen=True)
class QueueStats:
    """Immutable snapshot of the aggregate counters."""

    total_messages: int = 0
    pending_messages: int = 0
    processed_messages: int = 0
    failed_messages: int = 0
    average_processing_time: float = 0.0  # milliseconds
    messages_per_second: float = 0.0
    active_rooms: int = 0
    active_users: int = 0


class MessageFlowTracker:
    """
    Pending/processed/failed accounting for chat messages.

    Entries are kept until reset(); there is no time-based eviction.

    Usage:
        tracker = MessageFlowTracker()
        tracker.track(message_id, identity_id, room_id)
        tracker.mark_processed(message_id)
        stats = tracker.stats()
    """

    def __init__(self, throughput_window: float = 60.0, refresh_interval: float = 5.0):
        """
        Args:
            throughput_window: Seconds of history counted for throughput.
            refresh_interval: Seconds between throughput recomputations.
        """
        self._throughput_window = throughput_window
        self._refresh_interval = refresh_interval

        self._entries: dict[str, FlowEntry] = {}
        self._recent: deque[tuple[float, str]] = deque()
        self._active_rooms: set[str] = set()
        self._active_users: set[str] = set()

        self._total = 0
        self._pending = 0
        self._processed = 0
        self._failed = 0
        self._total_processing_ms = 0.0
        self._average_processing_ms = 0.0
        self._messages_per_second = 0.0

        self._refresh_task: asyncio.Task | None = None

    # =========================================================================
    # Lifecycle transitions
    # =========================================================================

    def track(self, message_id: str, identity_id: str, room_id: str, now: float | None = None) -> None:
        """Record a pending message."""
        now = time.time() if now is None else now
        self._entries[message_id] = FlowEntry(
            start_time=now,
            status=FlowStatus.PENDING,
            identity_id=identity_id,
            room_id=room_id,
        )
        self._total += 1
        self._pending += 1
        self._active_rooms.add(room_id)
        self._active_users.add(identity_id)
        self._recent.append((now, message_id))

    def mark_processed(self, message_id: str, now: float | None = None) -> bool:
        """
        Move a pending message to processed and fold its latency into the
        running average.

        Returns:
            False if the message is unknown or no longer pending.
        """
        entry = self._entries.get(message_id)
        if entry is None or entry.status is not FlowStatus.PENDING:
            return False

        now = time.time() if now is None else now
        entry.status = FlowStatus.PROCESSED
        self._pending -= 1
        self._processed += 1
        self._total_processing_ms += max(0.0, (now - entry.start_time) * 1000.0)
        self._average_processing_ms = self._total_processing_ms / self._processed
        return True

    def mark_failed(self, message_id: str, reason: str | None = None) -> bool:
        """
        Move a pending message to failed. Failed messages are not retried.

        Returns:
            False if the message is unknown or no longer pending.
        """
        entry = self._entries.get(message_id)
        if entry is None or entry.status is not FlowStatus.PENDING:
            return False

        entry.status = FlowStatus.FAILED
        entry.error = reason
        self._pending -= 1
        self._failed += 1
        if reason:
            logger.error("Message failed", message_id=message_id, reason=reason)
        return True

    # =========================================================================
    # Queries
    # =========================================================================

    def stats(self) -> QueueStats:
        return QueueStats(
            total_messages=self._total,
            pending_messages=self._pending,
            processed_messages=self._processed,
            failed_messages=self._failed,
            average_processing_time=self._average_processing_ms,
            messages_per_second=self._messages_per_second,
            active_rooms=len(self._active_rooms),
            active_users=len(self._active_users),
        )

    def entry(self, message_id: str) -> FlowEntry | None:
        return self._entries.get(message_id)

    def status_of(self, message_id: str) -> FlowStatus | None:
        entry = self._entries.get(message_id)
        return entry.status if entry is not None else None

    def processing_time_ms(self, message_id: str, now: float | None = None) -> float | None:
        """Elapsed milliseconds for a message that is still pending."""
        entry = self._entries.get(message_id)
        if entry is None or entry.status is not FlowStatus.PENDING:
            return None
        now = time.time() if now is None else now
        return max(0.0, (now - entry.start_time) * 1000.0)

    def active_rooms(self) -> list[str]:
        return sorted(self._active_rooms)

    def active_users(self) -> list[str]:
        return sorted(self._active_users)

    # =========================================================================
    # Throughput
    # =========================================================================

    def refresh_throughput(self, now: float | None = None) -> float:
        """Drop log entries older than the window and recompute throughput."""
        now = time.time() if now is None else now
        cutoff = now - self._throughput_window
        while self._recent and self._recent[0][0] <= cutoff:
            self._recent.popleft()
        self._messages_per_second = len(self._recent) / self._throughput_window
        return self._messages_per_second

    def start(self) -> None:
        """Start the periodic throughput refresh task."""
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = asyncio.create_task(self._refresh_loop(), name="flow_tracker_refresh")

    async def stop(self) -> None:
        if self._refresh_task is None:
            return
        self._refresh_task.cancel()
        try:
            await self._refresh_task
        except asyncio.CancelledError:
            pass
        self._refresh_task = None

    async def _refresh_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._refresh_interval)
                self.refresh_throughput()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error refreshing message throughput", error=str(e))

    # =========================================================================
    # Reset
    # =========================================================================

    def reset(self) -> None:
        """
        Clear per-message entries, the four message counters, latency and
        throughput. The active room and user sets are kept.
        """
        self._entries.clear()
        self._recent.clear()
        self._total = 0
        self._pending = 0
        self._processed = 0
        self._failed = 0
        self._total_processing_ms = 0.0
        self._average_processing_ms = 0.0
        self._messages_per_second = 0.0
        logger.info(
            "Message flow statistics reset",
            active_rooms=len(self._active_rooms),
            active_users=len(self._active_users),
        )

    def get_stats(self) -> dict[str, int | float]:
        snapshot = self.stats()
        return {
            "tracked_entries": len(self._entries),
            "total_messages": snapshot.total_messages,
            "pending_messages": snapshot.pending_messages,
            "failed_messages": snapshot.failed_messages,
            "messages_per_second": snapshot.messages_per_second,
        }

"""
Heartbeat Monitor for the chat gateway.

Detects half-open sockets that never signal closure. Each connection gets a
deadline timer; every pong pushes the deadline forward, and a connection
whose deadline passes is handed to the timeout callback, which closes it
through the normal disconnect path.

State per connection:

    PROBED --(ping tick)--> AWAITING_PONG --(pong)--> HEALTHY
       \\                       |   ^                    |
        \\                      |   \\---(ping tick)-----/
         \\------(deadline)-----+-----> TIMED_OUT <-----/

HEALTHY is AWAITING_PONG after an answer: the pong re-armed the deadline
(ping interval plus pong timeout) and the connection is waiting for the next
ping. It differs only in name, so stats and tests can tell a connection that
has answered at least once since the last tick from one that has not. The
next ping tick moves it back to AWAITING_PONG without touching the deadline.

Timers use loop.call_later; the periodic ping runs as its own task and
never blocks event processing.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable

from shared.config.logging import get_logger

logger = get_logger(__name__)

# Callback receiving the id of a connection whose deadline passed
TimeoutCallback = Callable[[str], Awaitable[None]]
# Sends one ping to every connection id given
PingSender = Callable[[list[str]], Awaitable[None]]


class HeartbeatState(str, Enum):
    PROBED = "probed"
    AWAITING_PONG = "awaiting_pong"
    HEALTHY = "healthy"
    TIMED_OUT = "timed_out"


class HeartbeatMonitor:
    """
    Tracks liveness deadlines for chat connections.

    Not thread-safe: all calls come from the event loop thread.
    """

    def __init__(
        self,
        pong_timeout: float = 10.0,
        ping_interval: float = 30.0,
        on_timeout: TimeoutCallback | None = None,
    ):
        """
        Initialize heartbeat monitor.

        Args:
            pong_timeout: Seconds allowed for the first pong after a probe.
            ping_interval: Seconds between server-wide pings.
            on_timeout: Awaited with the connection id when a deadline passes.
        """
        self._pong_timeout = pong_timeout
        self._ping_interval = ping_interval
        self._on_timeout = on_timeout

        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._states: dict[str, HeartbeatState] = {}
        self._last_pong: dict[str, float] = {}
        self._callback_tasks: set[asyncio.Task] = set()
        self._ping_task: asyncio.Task | None = None

        # Metrics
        self._pongs_received = 0
        self._timeouts = 0
        self._ping_cycles = 0

    @property
    def pong_timeout(self) -> float:
        return self._pong_timeout

    @property
    def ping_interval(self) -> float:
        return self._ping_interval

    @property
    def renewal_deadline(self) -> float:
        """Deadline armed by each pong: one full ping cycle plus the pong timeout."""
        return self._ping_interval + self._pong_timeout

    @property
    def tracked_count(self) -> int:
        """Get number of connections being tracked."""
        return len(self._timers)

    def set_timeout_callback(self, on_timeout: TimeoutCallback) -> None:
        self._on_timeout = on_timeout

    def register(self, connection_id: str) -> None:
        """
        Start tracking a connection and arm its probe timer.

        Re-registering an already tracked connection re-arms it.
        """
        self._arm(connection_id, self._pong_timeout)
        self._states[connection_id] = HeartbeatState.PROBED

    def record_pong(self, connection_id: str, timestamp: float | None = None) -> bool:
        """
        Record a pong and push the deadline forward.

        Args:
            connection_id: Connection that answered.
            timestamp: Optional Unix timestamp. If None, uses current time.

        Returns:
            False if the connection is not tracked (already timed out or removed).
        """
        if connection_id not in self._timers:
            return False

        self._arm(connection_id, self.renewal_deadline)
        self._states[connection_id] = HeartbeatState.HEALTHY
        self._last_pong[connection_id] = timestamp if timestamp is not None else time.time()
        self._pongs_received += 1
        return True

    def remove(self, connection_id: str) -> None:
        """
        Cancel and discard the connection's timer.

        Call this on every disconnect, whatever the cause.
        """
        handle = self._timers.pop(connection_id, None)
        if handle is not None:
            handle.cancel()
        self._states.pop(connection_id, None)
        self._last_pong.pop(connection_id, None)

    def state(self, connection_id: str) -> HeartbeatState | None:
        return self._states.get(connection_id)

    def tracked_connections(self) -> list[str]:
        return list(self._timers)

    def mark_pinged(self) -> list[str]:
        """
        Move every tracked connection to AWAITING_PONG.

        Returns:
            The connection ids that should receive a ping.
        """
        for connection_id in self._timers:
            self._states[connection_id] = HeartbeatState.AWAITING_PONG
        return list(self._timers)

    def _arm(self, connection_id: str, delay: float) -> None:
        handle = self._timers.pop(connection_id, None)
        if handle is not None:
            handle.cancel()
        loop = asyncio.get_running_loop()
        self._timers[connection_id] = loop.call_later(delay, self._expire, connection_id)

    def _expire(self, connection_id: str) -> None:
        """Timer callback: the deadline passed without a pong."""
        if self._timers.pop(connection_id, None) is None:
            return
        self._states[connection_id] = HeartbeatState.TIMED_OUT
        self._last_pong.pop(connection_id, None)
        self._timeouts += 1
        logger.info("Heartbeat timed out", connection_id=connection_id)

        # TIMED_OUT is terminal; the connection is no longer tracked
        self._states.pop(connection_id, None)

        if self._on_timeout is None:
            return
        task = asyncio.get_running_loop().create_task(
            self._run_timeout_callback(connection_id),
            name=f"heartbeat_timeout:{connection_id}",
        )
        self._callback_tasks.add(task)
        task.add_done_callback(self._callback_tasks.discard)

    async def _run_timeout_callback(self, connection_id: str) -> None:
        try:
            await self._on_timeout(connection_id)
        except Exception as e:
            logger.error(
                "Error handling heartbeat timeout",
                connection_id=connection_id,
                error=str(e),
                exc_info=True,
            )

    # =========================================================================
    # Periodic ping
    # =========================================================================

    def start(self, send_ping: PingSender) -> None:
        """Start the periodic ping task."""
        if self._ping_task is not None and not self._ping_task.done():
            return
        self._ping_task = asyncio.create_task(self._ping_loop(send_ping), name="heartbeat_ping")

    async def stop(self) -> None:
        """Stop the ping task, cancel every timer and wait for pending callbacks."""
        if self._ping_task is not None:
            self._ping_task.cancel()
            try:
                await self._ping_task
            except asyncio.CancelledError:
                pass
            self._ping_task = None

        for connection_id in list(self._timers):
            self.remove(connection_id)

        if self._callback_tasks:
            await asyncio.gather(*self._callback_tasks, return_exceptions=True)

    async def _ping_loop(self, send_ping: PingSender) -> None:
        while True:
            try:
                await asyncio.sleep(self._ping_interval)
                targets = self.mark_pinged()
                self._ping_cycles += 1
                if targets:
                    await send_ping(targets)
                    logger.debug("Heartbeat ping sent", connections=len(targets))
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in heartbeat ping", error=str(e))

    def get_stats(self) -> dict[str, float | int]:
        """Get heartbeat monitor statistics."""
        now = time.time()
        ages = [now - t for t in self._last_pong.values()]
        by_state: dict[str, int] = {}
        for state in self._states.values():
            by_state[state.value] = by_state.get(state.value, 0) + 1

        return {
            "tracked_connections": len(self._timers),
            "pong_timeout_seconds": self._pong_timeout,
            "ping_interval_seconds": self._ping_interval,
            "pongs_received": self._pongs_received,
            "timeouts": self._timeouts,
            "ping_cycles": self._ping_cycles,
            "oldest_pong_age": max(ages) if ages else 0,
            **{f"state_{name}": count for name, count in by_state.items()},
        }

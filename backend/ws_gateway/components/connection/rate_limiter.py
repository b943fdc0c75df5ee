"""
Chat Rate Limiter.

Per-identity rate limiting using a fixed window counter with a lockout.
Prevents a single participant from flooding a room.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from shared.config.logging import get_logger
from ws_gateway.components.core.constants import WSConstants

logger = get_logger(__name__)


@dataclass
class RateLimitState:
    """Counter state for one identity."""

    count: int
    window_start: float
    blocked: bool = False
    blocked_at: float | None = None


class IdentityRateLimiter:
    """
    Per-identity rate limiter for chat messages.

    Fixed window with lockout:
    - The first message opens a window and counts 1
    - Messages inside the window increment the count
    - Exceeding the ceiling blocks the identity for block_seconds
    - After the window (or the block) elapses the next message opens a
      fresh window with count 1

    Bursts straddling a window boundary can pass up to twice the nominal
    rate. That is accepted behaviour of this algorithm and kept as is.

    Not thread-safe: all calls come from the event loop thread.
    """

    def __init__(
        self,
        max_messages: int = 30,
        window_seconds: float = 60.0,
        block_seconds: float = 300.0,
        max_tracked: int = WSConstants.MAX_TRACKED_IDENTITIES,
    ):
        """
        Initialize the rate limiter.

        Args:
            max_messages: Maximum messages allowed per window.
            window_seconds: Window size in seconds.
            block_seconds: Lockout duration once the ceiling is exceeded.
            max_tracked: Number of states above which stale states are
                purged eagerly.
        """
        self._max_messages = max_messages
        self._window_seconds = window_seconds
        self._block_seconds = block_seconds
        self._max_tracked = max_tracked

        self._states: dict[str, RateLimitState] = {}

        # Metrics
        self._total_allowed = 0
        self._total_rejected = 0
        self._total_blocks = 0

    @property
    def max_messages(self) -> int:
        """Maximum messages allowed per window."""
        return self._max_messages

    @property
    def window_seconds(self) -> float:
        """Window size in seconds."""
        return self._window_seconds

    @property
    def block_seconds(self) -> float:
        return self._block_seconds

    @property
    def tracked_count(self) -> int:
        """Number of identities currently being tracked."""
        return len(self._states)

    def allow(self, identity_id: str, now: float | None = None) -> bool:
        """
        Check whether a message from this identity is admitted.

        Args:
            identity_id: The identity sending the message.
            now: Optional Unix timestamp. If None, uses current time.
                 Useful for testing.

        Returns:
            True if the message is allowed, False if rate limited.
        """
        now = time.time() if now is None else now
        state = self._states.get(identity_id)

        if state is None:
            if len(self._states) >= self._max_tracked:
                self.cleanup_stale(now)
            self._states[identity_id] = RateLimitState(count=1, window_start=now)
            return self._admit()

        if state.blocked:
            if state.blocked_at is not None and now - state.blocked_at > self._block_seconds:
                self._states[identity_id] = RateLimitState(count=1, window_start=now)
                logger.debug("Rate limit block expired", identity_id=identity_id)
                return self._admit()
            return self._reject()

        if now - state.window_start > self._window_seconds:
            state.count = 1
            state.window_start = now
            return self._admit()

        state.count += 1
        if state.count > self._max_messages:
            state.blocked = True
            state.blocked_at = now
            self._total_blocks += 1
            logger.warning(
                "Identity rate limited",
                identity_id=identity_id,
                count=state.count,
                block_seconds=self._block_seconds,
            )
            return self._reject()

        return self._admit()

    def _admit(self) -> bool:
        self._total_allowed += 1
        return True

    def _reject(self) -> bool:
        self._total_rejected += 1
        return False

    def get_state(self, identity_id: str) -> RateLimitState | None:
        """Current state of an identity, or None if untracked."""
        return self._states.get(identity_id)

    def remove(self, identity_id: str) -> None:
        """
        Stop tracking an identity.

        Call this when the identity disconnects.
        """
        self._states.pop(identity_id, None)

    def cleanup_stale(self, now: float | None = None) -> int:
        """
        Remove states that no longer constrain anything: unblocked states
        whose window has elapsed, and blocked states whose block has expired.

        Returns:
            Number of entries cleaned up.
        """
        now = time.time() if now is None else now
        to_remove = [
            identity_id
            for identity_id, state in self._states.items()
            if (
                state.blocked
                and state.blocked_at is not None
                and now - state.blocked_at > self._block_seconds
            )
            or (not state.blocked and now - state.window_start > self._window_seconds)
        ]
        for identity_id in to_remove:
            del self._states[identity_id]
        return len(to_remove)

    def get_stats(self) -> dict[str, int | float]:
        """Get rate limiter statistics."""
        return {
            "tracked_identities": len(self._states),
            "blocked_identities": sum(1 for s in self._states.values() if s.blocked),
            "max_messages_per_window": self._max_messages,
            "window_seconds": self._window_seconds,
            "block_seconds": self._block_seconds,
            "total_allowed": self._total_allowed,
            "total_rejected": self._total_rejected,
            "total_blocks": self._total_blocks,
        }

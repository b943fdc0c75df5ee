"""
Tests for the per-identity chat rate limiter (fixed window with lockout).
"""

from ws_gateway.components.connection.rate_limiter import IdentityRateLimiter


class TestIdentityRateLimiter:
    """Window counting, lockout and expiry."""

    def test_first_message_opens_window(self):
        limiter = IdentityRateLimiter(max_messages=30, window_seconds=60, block_seconds=300)

        assert limiter.allow("alice", now=1000.0) is True
        state = limiter.get_state("alice")
        assert state.count == 1
        assert state.window_start == 1000.0
        assert state.blocked is False

    def test_31st_message_in_window_is_denied(self):
        limiter = IdentityRateLimiter(max_messages=30, window_seconds=60, block_seconds=300)

        results = [limiter.allow("alice", now=1000.0 + i * 0.1) for i in range(31)]

        assert results[:30] == [True] * 30
        assert results[30] is False
        assert limiter.get_state("alice").blocked is True

    def test_blocked_identity_stays_denied_until_block_elapses(self):
        limiter = IdentityRateLimiter(max_messages=2, window_seconds=60, block_seconds=300)
        for _ in range(3):
            limiter.allow("alice", now=1000.0)

        # Window has elapsed but the block has not
        assert limiter.allow("alice", now=1100.0) is False
        assert limiter.allow("alice", now=1300.0) is False

    def test_allowed_with_fresh_count_after_block(self):
        limiter = IdentityRateLimiter(max_messages=30, window_seconds=60, block_seconds=300)
        for i in range(31):
            limiter.allow("alice", now=1000.0 + i * 0.1)

        blocked_at = limiter.get_state("alice").blocked_at
        assert limiter.allow("alice", now=blocked_at + 300.1) is True

        state = limiter.get_state("alice")
        assert state.count == 1
        assert state.blocked is False

    def test_window_elapse_resets_count(self):
        limiter = IdentityRateLimiter(max_messages=3, window_seconds=60, block_seconds=300)
        for _ in range(3):
            assert limiter.allow("alice", now=1000.0)

        assert limiter.allow("alice", now=1060.5) is True
        assert limiter.get_state("alice").count == 1

    def test_boundary_burst_admits_twice_the_ceiling(self):
        """A burst straddling the window boundary passes 2x the nominal rate."""
        limiter = IdentityRateLimiter(max_messages=30, window_seconds=60, block_seconds=300)

        late = [limiter.allow("alice", now=1059.0) for _ in range(30)]
        # First call opened the window at 1059; move past its end
        early = [limiter.allow("alice", now=1119.5) for _ in range(30)]

        assert all(late) and all(early)

    def test_identities_are_independent(self):
        limiter = IdentityRateLimiter(max_messages=1, window_seconds=60, block_seconds=300)

        assert limiter.allow("alice", now=1000.0)
        assert limiter.allow("alice", now=1000.0) is False
        assert limiter.allow("bob", now=1000.0) is True

    def test_remove_forgets_identity(self):
        limiter = IdentityRateLimiter(max_messages=1, window_seconds=60, block_seconds=300)
        limiter.allow("alice", now=1000.0)
        limiter.allow("alice", now=1000.0)

        limiter.remove("alice")

        assert limiter.get_state("alice") is None
        assert limiter.allow("alice", now=1000.0) is True

    def test_cleanup_stale(self):
        limiter = IdentityRateLimiter(max_messages=1, window_seconds=60, block_seconds=300)
        limiter.allow("idle", now=1000.0)
        limiter.allow("blocked", now=1000.0)
        limiter.allow("blocked", now=1000.0)
        limiter.allow("active", now=1090.0)

        cleaned = limiter.cleanup_stale(now=1100.0)

        assert cleaned == 1
        assert limiter.get_state("idle") is None
        assert limiter.get_state("blocked") is not None
        assert limiter.get_state("active") is not None

    def test_stats(self):
        limiter = IdentityRateLimiter(max_messages=1, window_seconds=60, block_seconds=300)
        limiter.allow("alice", now=1000.0)
        limiter.allow("alice", now=1000.0)

        stats = limiter.get_stats()
        assert stats["total_allowed"] == 1
        assert stats["total_rejected"] == 1
        assert stats["total_blocks"] == 1
        assert stats["blocked_identities"] == 1

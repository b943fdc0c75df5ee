"""
Tests for the message flow tracker.
"""

import pytest

from shared.config.constants import FlowStatus
from ws_gateway.components.metrics.flow_tracker import MessageFlowTracker


class TestMessageFlowTracker:
    """Pending -> processed | failed accounting."""

    def test_track_records_pending_entry(self):
        tracker = MessageFlowTracker()
        tracker.track("m1", "alice", "general", now=100.0)

        stats = tracker.stats()
        assert stats.total_messages == 1
        assert stats.pending_messages == 1
        assert stats.active_rooms == 1
        assert stats.active_users == 1
        assert tracker.status_of("m1") is FlowStatus.PENDING

    def test_mark_processed_transitions_exactly_once(self):
        tracker = MessageFlowTracker()
        tracker.track("m1", "alice", "general", now=100.0)

        assert tracker.mark_processed("m1", now=100.5) is True
        assert tracker.mark_processed("m1", now=200.0) is False

        stats = tracker.stats()
        assert stats.pending_messages == 0
        assert stats.processed_messages == 1
        assert stats.average_processing_time == pytest.approx(500.0)

    def test_average_is_total_elapsed_over_count(self):
        tracker = MessageFlowTracker()
        tracker.track("m1", "alice", "general", now=0.0)
        tracker.track("m2", "alice", "general", now=0.0)
        tracker.mark_processed("m1", now=0.1)
        tracker.mark_processed("m2", now=0.3)

        assert tracker.stats().average_processing_time == pytest.approx(200.0)

    def test_unknown_ids_are_ignored(self):
        tracker = MessageFlowTracker()

        assert tracker.mark_processed("missing") is False
        assert tracker.mark_failed("missing", "boom") is False
        assert tracker.stats().total_messages == 0

    def test_mark_failed_records_reason(self):
        tracker = MessageFlowTracker()
        tracker.track("m1", "alice", "general")

        assert tracker.mark_failed("m1", "database unavailable") is True
        assert tracker.mark_processed("m1") is False

        stats = tracker.stats()
        assert stats.failed_messages == 1
        assert stats.processed_messages == 0
        assert tracker.entry("m1").error == "database unavailable"

    def test_stats_snapshot_is_immutable_copy(self):
        tracker = MessageFlowTracker()
        snapshot = tracker.stats()
        tracker.track("m1", "alice", "general")

        assert snapshot.total_messages == 0
        with pytest.raises(AttributeError):
            snapshot.total_messages = 5

    def test_throughput_counts_trailing_window(self):
        tracker = MessageFlowTracker(throughput_window=60.0)
        for i in range(6):
            tracker.track(f"old{i}", "alice", "general", now=10.0)
        for i in range(12):
            tracker.track(f"new{i}", "alice", "general", now=80.0)

        assert tracker.refresh_throughput(now=100.0) == pytest.approx(12 / 60)
        assert tracker.stats().messages_per_second == pytest.approx(0.2)

    def test_processing_time_only_for_pending(self):
        tracker = MessageFlowTracker()
        tracker.track("m1", "alice", "general", now=10.0)

        assert tracker.processing_time_ms("m1", now=10.25) == pytest.approx(250.0)
        tracker.mark_processed("m1", now=10.3)
        assert tracker.processing_time_ms("m1") is None

    def test_reset_keeps_active_sets(self):
        tracker = MessageFlowTracker()
        tracker.track("m1", "alice", "general", now=1.0)
        tracker.track("m2", "bob", "tech", now=1.0)
        tracker.mark_processed("m1", now=2.0)
        tracker.mark_failed("m2")

        tracker.reset()

        stats = tracker.stats()
        assert stats.total_messages == 0
        assert stats.pending_messages == 0
        assert stats.processed_messages == 0
        assert stats.failed_messages == 0
        assert stats.average_processing_time == 0.0
        assert stats.active_rooms == 2
        assert stats.active_users == 2
        assert tracker.entry("m1") is None
        assert tracker.active_rooms() == ["general", "tech"]

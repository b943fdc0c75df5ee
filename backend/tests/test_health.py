"""
Tests for health check endpoints.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from rest_api.core import middlewares
from shared.utils.exceptions import StorageError
from ws_gateway.components.core.dependencies import get_gateway, get_process_monitor
from ws_gateway.components.metrics.process_monitor import ProcessMonitor, ProcessSample
from ws_gateway.main import app


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_health_basic(self, client):
        """Test basic health check returns healthy status."""
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "roomchat"
        assert data["active_connections"] == 0

    def test_health_counts_connections(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            data = client.get("/api/health").json()

        assert data["active_connections"] == 1

    def test_health_detailed(self, client):
        """Test detailed health check includes the database and gateway stats."""
        response = client.get("/api/health/detailed")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["dependencies"]["database"]["status"] == "healthy"
        assert "rate_limiter" in data["gateway"]
        assert "message_flow" in data["gateway"]

    def test_health_detailed_degraded_when_database_down(self, client):
        store = get_gateway().store
        original = store.ping
        store.ping = AsyncMock(side_effect=StorageError("ping"))
        try:
            response = client.get("/api/health/detailed")
        finally:
            store.ping = original

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["dependencies"]["database"]["status"] == "unhealthy"

    def test_request_id_header_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    def test_malformed_request_id_replaced(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "bad id\twith spaces"})
        echoed = response.headers["X-Request-ID"]
        assert echoed != "bad id\twith spaces"
        assert len(echoed) == 36


def seeded_monitor(*ages_in_minutes: float) -> ProcessMonitor:
    """Monitor holding one synthetic sample per age, oldest first."""
    monitor = ProcessMonitor()
    now = datetime.now(timezone.utc)
    for age in sorted(ages_in_minutes, reverse=True):
        monitor._samples.append(
            ProcessSample(
                timestamp=now - timedelta(minutes=age),
                rss_bytes=50_000_000,
                vms_bytes=200_000_000,
                memory_percent=1.5,
                cpu_percent=2.0,
                load_average=(0.1, 0.2, 0.3),
                loop_latency_ms=0.05,
                loop_lag_ms=1.0,
                uptime=60.0,
            )
        )
    return monitor


class TestProcessMetricsEndpoints:
    """Process samples exposed by /api/health and /api/health/metrics."""

    def test_health_includes_latest_sample(self, client):
        app.dependency_overrides[get_process_monitor] = lambda: seeded_monitor(0.5)
        try:
            data = client.get("/api/health").json()
        finally:
            app.dependency_overrides.clear()

        assert data["status"] == "healthy"
        assert data["metrics"]["status"] == "healthy"
        assert data["metrics"]["metrics"]["memory"]["rss"] == 50_000_000
        assert data["metrics"]["metrics"]["eventLoop"]["lag"] == 1.0

    def test_health_metrics_unknown_without_samples(self, client):
        app.dependency_overrides[get_process_monitor] = lambda: ProcessMonitor()
        try:
            data = client.get("/api/health").json()
        finally:
            app.dependency_overrides.clear()

        assert data["metrics"]["status"] == "unknown"

    def test_metrics_default_window(self, client):
        app.dependency_overrides[get_process_monitor] = lambda: seeded_monitor(10, 2, 1)
        try:
            default = client.get("/api/health/metrics")
            wide = client.get("/api/health/metrics", params={"minutes": 15})
        finally:
            app.dependency_overrides.clear()

        assert default.status_code == 200
        assert len(default.json()) == 2
        assert len(wide.json()) == 3
        assert wide.json()[0]["cpu"]["loadAvg"] == [0.1, 0.2, 0.3]

    @pytest.mark.parametrize("minutes", ["abc", "0", "-3", "1.5"])
    def test_metrics_rejects_invalid_minutes(self, client, minutes):
        response = client.get("/api/health/metrics", params={"minutes": minutes})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid minutes parameter"

    def test_detailed_reports_monitor_stats(self, client):
        data = client.get("/api/health/detailed").json()

        assert "samples" in data["process"]
        assert data["process"]["running"] is True


class TestRequestLogging:
    """Access log level follows the response status class."""

    def test_success_logged_at_info(self, client):
        with patch.object(middlewares.access_logger, "info") as info:
            client.get("/api/health", headers={"User-Agent": "pytest-agent"})

        kwargs = info.call_args.kwargs
        assert info.call_args.args[0].startswith("Request completed: GET /api/health - 200")
        assert kwargs["method"] == "GET"
        assert kwargs["url"] == "/api/health"
        assert kwargs["status_code"] == 200
        assert kwargs["user_agent"] == "pytest-agent"
        assert kwargs["duration_ms"] >= 0

    def test_client_error_logged_at_warning(self, client):
        with patch.object(middlewares.access_logger, "warning") as warning:
            client.get("/api/health/metrics", params={"minutes": "x"})

        assert warning.call_args.args[0] == "Client error 400 on GET /api/health/metrics?minutes=x"
        assert warning.call_args.kwargs["status_code"] == 400

    def test_server_error_logged_at_error(self, client):
        store = get_gateway().store
        original = store.ping
        store.ping = AsyncMock(side_effect=StorageError("ping"))
        try:
            with patch.object(middlewares.access_logger, "error") as error:
                client.get("/api/health/detailed")
        finally:
            store.ping = original

        assert error.call_args.args[0] == "Server error 503 on GET /api/health/detailed"
        assert error.call_args.kwargs["status_code"] == 503

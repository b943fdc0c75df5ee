"""
Dependencies for the chat WebSocket gateway.

Every component is a process-wide singleton built from settings. FastAPI
routes receive them through Depends; tests call reset_singletons() between
cases.
"""

from __future__ import annotations

import threading

from shared.config.settings import settings
from ws_gateway.components.connection.channels import ChannelHub
from ws_gateway.components.connection.heartbeat import HeartbeatMonitor
from ws_gateway.components.connection.presence import PresenceRegistry
from ws_gateway.components.connection.rate_limiter import IdentityRateLimiter
from ws_gateway.components.data.chat_store import ChatStore, get_chat_store, reset_chat_store
from ws_gateway.components.events.router import EventRouter
from ws_gateway.components.metrics.flow_tracker import MessageFlowTracker
from ws_gateway.components.metrics.process_monitor import ProcessMonitor
from ws_gateway.gateway import RoomBroadcastGateway

# =============================================================================
# Singleton Instances
# =============================================================================

_channel_hub: ChannelHub | None = None
_presence_registry: PresenceRegistry | None = None
_rate_limiter: IdentityRateLimiter | None = None
_heartbeat_monitor: HeartbeatMonitor | None = None
_flow_tracker: MessageFlowTracker | None = None
_process_monitor: ProcessMonitor | None = None
_gateway: RoomBroadcastGateway | None = None
_event_router: EventRouter | None = None
_singleton_lock = threading.RLock()


# =============================================================================
# Component Factories (double-check locking)
# =============================================================================


def get_channel_hub() -> ChannelHub:
    global _channel_hub
    if _channel_hub is None:
        with _singleton_lock:
            if _channel_hub is None:
                _channel_hub = ChannelHub()
    return _channel_hub


def get_presence_registry() -> PresenceRegistry:
    global _presence_registry
    if _presence_registry is None:
        with _singleton_lock:
            if _presence_registry is None:
                _presence_registry = PresenceRegistry()
    return _presence_registry


def get_rate_limiter() -> IdentityRateLimiter:
    """Per-identity chat message limiter configured from settings."""
    global _rate_limiter
    if _rate_limiter is None:
        with _singleton_lock:
            if _rate_limiter is None:
                _rate_limiter = IdentityRateLimiter(
                    max_messages=settings.chat_rate_limit,
                    window_seconds=settings.chat_rate_window,
                    block_seconds=settings.chat_rate_block_seconds,
                )
    return _rate_limiter


def get_heartbeat_monitor() -> HeartbeatMonitor:
    global _heartbeat_monitor
    if _heartbeat_monitor is None:
        with _singleton_lock:
            if _heartbeat_monitor is None:
                _heartbeat_monitor = HeartbeatMonitor(
                    pong_timeout=settings.ws_pong_timeout,
                    ping_interval=settings.ws_ping_interval,
                )
    return _heartbeat_monitor


def get_flow_tracker() -> MessageFlowTracker:
    global _flow_tracker
    if _flow_tracker is None:
        with _singleton_lock:
            if _flow_tracker is None:
                _flow_tracker = MessageFlowTracker(
                    throughput_window=settings.queue_throughput_window,
                    refresh_interval=settings.queue_stats_refresh_interval,
                )
    return _flow_tracker


def get_process_monitor() -> ProcessMonitor:
    """Process health sampler configured from settings."""
    global _process_monitor
    if _process_monitor is None:
        with _singleton_lock:
            if _process_monitor is None:
                _process_monitor = ProcessMonitor(
                    interval=settings.metrics_collection_interval,
                    history_size=settings.metrics_history_size,
                    memory_threshold_percent=settings.metrics_memory_threshold_percent,
                    cpu_threshold_percent=settings.metrics_cpu_threshold_percent,
                    lag_threshold_ms=settings.metrics_event_loop_lag_threshold_ms,
                )
    return _process_monitor


def get_store() -> ChatStore:
    return get_chat_store()


def get_gateway() -> RoomBroadcastGateway:
    """
    Get the singleton gateway, wired to the other singletons.

    The lock is re-entrant because the component getters take it too.
    """
    global _gateway
    if _gateway is None:
        with _singleton_lock:
            if _gateway is None:
                _gateway = RoomBroadcastGateway(
                    store=get_store(),
                    hub=get_channel_hub(),
                    presence=get_presence_registry(),
                    rate_limiter=get_rate_limiter(),
                    heartbeat=get_heartbeat_monitor(),
                    tracker=get_flow_tracker(),
                )
    return _gateway


def get_event_router() -> EventRouter:
    global _event_router
    if _event_router is None:
        with _singleton_lock:
            if _event_router is None:
                _event_router = EventRouter(get_gateway())
    return _event_router


# =============================================================================
# Testing Support
# =============================================================================


def reset_singletons() -> None:
    """Drop every singleton so the next getter call builds a fresh one."""
    global _channel_hub, _presence_registry, _rate_limiter
    global _heartbeat_monitor, _flow_tracker, _process_monitor, _gateway, _event_router
    with _singleton_lock:
        _channel_hub = None
        _presence_registry = None
        _rate_limiter = None
        _heartbeat_monitor = None
        _flow_tracker = None
        _process_monitor = None
        _gateway = None
        _event_router = None
    reset_chat_store()

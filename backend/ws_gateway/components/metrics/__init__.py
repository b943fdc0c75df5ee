"""
Message flow tracking and process health sampling.
"""

from ws_gateway.components.metrics.flow_tracker import FlowEntry, MessageFlowTracker, QueueStats
from ws_gateway.components.metrics.process_monitor import ProcessMonitor, ProcessSample

__all__ = ["FlowEntry", "MessageFlowTracker", "ProcessMonitor", "ProcessSample", "QueueStats"]

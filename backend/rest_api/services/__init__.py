"""
Services module for business logic.

Architecture:
    Router (thin) -> Service -> Repository / in-memory trackers
"""

from .queue_report import QueueReportService

__all__ = ["QueueReportService"]

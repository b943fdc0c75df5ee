"""
Configuration module: Settings, logging, constants.
"""

from shared.config.settings import settings, DATABASE_URL
from shared.config.logging import get_logger, setup_logging
from shared.config.constants import (
    LOBBY_ROOM,
    SYSTEM_USER,
    DEFAULT_ROOMS,
    FlowStatus,
    ClientEvent,
    ServerEvent,
    Limits,
)

__all__ = [
    # settings
    "settings",
    "DATABASE_URL",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "LOBBY_ROOM",
    "SYSTEM_USER",
    "DEFAULT_ROOMS",
    "FlowStatus",
    "ClientEvent",
    "ServerEvent",
    "Limits",
]

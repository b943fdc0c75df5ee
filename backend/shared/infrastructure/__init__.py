"""
Infrastructure module: Database sessions and correlation context.

Provides:
- Database engine and sessions (db.py)
- Request/connection correlation ids (correlation.py)
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    build_engine,
    safe_commit,
)

__all__ = [
    "engine",
    "SessionLocal",
    "build_engine",
    "safe_commit",
]

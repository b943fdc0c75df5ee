"""
Base Repository implementation.
Provides common data access patterns shared by concrete repositories.
"""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from shared.config.constants import Limits
from shared.infrastructure.db import safe_commit


@dataclass
class RepositoryFilters:
    """Base filters for repository queries."""

    # Pagination
    limit: int = Limits.QUERY_LIMIT_DEFAULT
    offset: int = 0

    def __post_init__(self):
        """Validate and normalize filters."""
        self.limit = min(max(1, self.limit), Limits.QUERY_LIMIT_MAX)
        self.offset = max(0, self.offset)


class BaseRepository:
    """
    Repository bound to a single session.

    Write methods commit through safe_commit so a failed commit never leaves
    the session in a broken transaction.
    """

    def __init__(self, db: Session):
        self._db = db

    @property
    def db(self) -> Session:
        return self._db

    def _commit(self) -> None:
        safe_commit(self._db)

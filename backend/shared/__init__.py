"""
Shared module for common utilities across the REST API and the WS Gateway.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: Rooms, event names, FlowStatus

- shared.infrastructure: Database and request context
  - db.py: SQLAlchemy engine and sessions, safe_commit()
  - correlation.py: Request/connection correlation ids

- shared.security: HTTP rate limiting (slowapi)

- shared.utils: Utilities
  - exceptions.py: Domain errors and HTTP exceptions with auto-logging

IMPORT EXAMPLES:
    from shared.infrastructure.db import SessionLocal, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import LOBBY_ROOM, ServerEvent
    from shared.utils.exceptions import StorageError, RoomAlreadyExistsError
"""

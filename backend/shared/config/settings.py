"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with defaults for development."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    # SQLite keeps local development dependency-free; use
    # postgresql+psycopg://... in deployed environments.
    database_url: str = "sqlite:///./roomchat.db"
    db_call_timeout: float = 5.0  # Seconds before a store call is reported as failed

    # Environment
    environment: str = "development"
    debug: bool = True

    # Logging
    log_level: str = ""  # Empty: DEBUG when debug is on, INFO otherwise
    log_json: bool | None = None  # None: JSON lines in production only

    # Comma-separated list of allowed origins (empty allows the default localhost list)
    allowed_origins: str = ""

    # Server ports
    ws_gateway_port: int = 8001

    # WebSocket transport
    ws_max_message_size: int = 64 * 1024  # 64 KB
    ws_max_total_connections: int = 1000  # Maximum concurrent WebSocket connections

    # Heartbeat
    ws_ping_interval: float = 30.0  # Server-wide ping cadence
    ws_pong_timeout: float = 10.0  # Deadline for the first pong after a probe

    # Chat rate limiting (fixed window with lockout, per identity)
    chat_rate_limit: int = 30  # Max messages per window
    chat_rate_window: int = 60  # Window in seconds
    chat_rate_block_seconds: int = 300  # Lockout once the ceiling is exceeded

    # Message retention
    max_messages_per_room: int = 50
    message_history_limit: int = 100

    # Message flow tracker
    queue_stats_refresh_interval: float = 5.0
    queue_throughput_window: float = 60.0

    # HTTP reporting surface
    queue_api_rate_limit: str = "120/minute"
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"

    # Background housekeeping (rate limiter cleanup)
    maintenance_interval: float = 30.0

    # Process monitoring
    monitoring_enabled: bool = True
    metrics_collection_interval: float = 5.0  # Seconds between process samples
    metrics_history_size: int = 1000
    metrics_memory_threshold_percent: float = 85.0  # RSS as a share of system memory
    metrics_cpu_threshold_percent: float = 80.0
    metrics_event_loop_lag_threshold_ms: float = 100.0
    metrics_default_window_minutes: int = 5

    @property
    def use_json_logs(self) -> bool:
        """Whether log records are rendered as JSON lines."""
        if self.log_json is not None:
            return self.log_json
        return self.environment == "production"

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured database is SQLite."""
        return self.database_url.startswith("sqlite")

    def validate_production_settings(self) -> list[str]:
        """
        Validate settings that must be changed before running in production.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.environment == "production":
            if self.debug:
                errors.append("DEBUG must be False in production")

            if not self.allowed_origins:
                errors.append(
                    "ALLOWED_ORIGINS must be set in production (comma-separated list of allowed domains)"
                )

            if self.is_sqlite:
                errors.append("DATABASE_URL should point to a server database in production")

        if self.ws_pong_timeout >= self.ws_ping_interval:
            errors.append("WS_PONG_TIMEOUT must be shorter than WS_PING_INTERVAL")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience exports
settings = get_settings()

# Direct access to commonly used settings
DATABASE_URL = settings.database_url

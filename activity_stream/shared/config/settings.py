"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Stream client settings with defaults for development."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Activity feed endpoint (Server-Sent Events)
    stream_url: str = "http://localhost:5173/api/gastown/feed/stream"

    # Reconnection policy - all durations in seconds
    stream_initial_delay: float = 1.0  # First backoff step
    stream_max_delay: float = 30.0  # Backoff ceiling, retries continue at this pace
    # Outages longer than this invalidate the replay position and force a snapshot
    stream_full_refresh_threshold: float = 60.0
    stream_backoff_multiplier: float = 2.0

    # Transport
    stream_connect_timeout: float = 10.0
    # None keeps idle streams open; the server is expected to send keep-alive comments
    stream_read_timeout: float | None = None
    stream_max_message_size: int = 64 * 1024  # 64 KB

    # Malformed message monitoring
    stream_drop_window_seconds: float = 60.0
    stream_drop_alert_threshold_percent: float = 5.0
    stream_drop_alert_cooldown_seconds: float = 300.0

    # Snapshot fetcher (used by the CLI when a full refresh is due)
    snapshot_url: str = ""
    snapshot_timeout: float = 15.0

    # Environment
    environment: str = "development"
    debug: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience exports
settings = get_settings()

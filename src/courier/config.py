"""Configuration management for Courier."""

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Backoff before retry attempts 2..6, in seconds (1m, 5m, 15m, 1h, 6h)
DEFAULT_RETRY_INTERVALS = [60, 300, 900, 3600, 21600]


class Settings(BaseSettings):
    """Courier configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the COURIER_ prefix. For example:
        COURIER_QDRANT_URL=http://localhost:6333
        COURIER_LOCAL_STORE_DIR=/var/lib/courier
        COURIER_RETRY_INTERVALS_SECONDS='[30, 60, 120, 240]'
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Remote store
    qdrant_url: str | None = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL. None disables the remote tier.",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="courier",
        min_length=1,
        description="Prefix for Qdrant collection names",
    )
    storage_max_scroll_limit: int = Field(
        default=10000,
        ge=100,
        le=100000,
        description="Maximum records fetched from the remote store per read",
    )

    # Local store
    local_store_dir: Path = Field(
        default=Path("~/.courier/store"),
        description="Directory of the local fallback store (one JSON file per namespace)",
    )

    # Delivery
    delivery_timeout_seconds: float = Field(
        default=15.0,
        ge=1.0,
        le=120.0,
        description="Timeout for a single webhook POST",
    )
    max_concurrent_deliveries: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum deliveries in flight for one dispatch",
    )

    # Retry
    retry_max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Total delivery attempts per event and subscriber, including the first",
    )
    retry_intervals_seconds: list[int] = Field(
        default_factory=lambda: list(DEFAULT_RETRY_INTERVALS),
        description="Backoff (seconds) after the 1st, 2nd, ... failed attempt",
    )
    retry_poll_interval_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds between retry worker ticks",
    )

    # Delivery log
    log_retention: int = Field(
        default=1000,
        ge=1,
        description="Delivery log entries kept per workspace (oldest evicted)",
    )
    emergency_log_retention: int = Field(
        default=100,
        ge=1,
        description="Entries kept per workspace in the emergency log namespace",
    )

    # API server
    api_host: str = Field(
        default="127.0.0.1",
        description="Interface the API server binds to",
    )
    api_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port the API server listens on",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    model_config = {
        "env_prefix": "COURIER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_retry_schedule(self) -> "Settings":
        """Ensure every queueable retry has a positive, non-decreasing backoff.

        A job is queued after failed attempts 1 .. retry_max_attempts - 1, so
        that many intervals are required.
        """
        needed = self.retry_max_attempts - 1
        intervals = self.retry_intervals_seconds
        if len(intervals) < needed:
            raise ValueError(
                f"retry_intervals_seconds has {len(intervals)} entries but "
                f"retry_max_attempts={self.retry_max_attempts} needs at least {needed}"
            )
        if any(i <= 0 for i in intervals):
            raise ValueError("retry_intervals_seconds must all be positive")
        if any(b < a for a, b in zip(intervals, intervals[1:], strict=False)):
            raise ValueError("retry_intervals_seconds must be non-decreasing")
        return self

    @model_validator(mode="after")
    def validate_log_retention(self) -> "Settings":
        """Warn when the emergency namespace keeps more than the primary log."""
        if self.emergency_log_retention > self.log_retention:
            logger.warning(
                "emergency_log_retention (%d) exceeds log_retention (%d)",
                self.emergency_log_retention,
                self.log_retention,
            )
        return self

    @property
    def remote_enabled(self) -> bool:
        """Whether a remote store tier is configured."""
        return bool(self.qdrant_url)

    @property
    def resolved_local_store_dir(self) -> Path:
        """Local store directory with ``~`` expanded."""
        return self.local_store_dir.expanduser()


# Global settings instance
settings = Settings()

"""
Configuration management for the vblog core.

All configuration is done via environment variables - no config files.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep from_env() and the dataclass defaults in step
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class StorageConfig:
    """Durable store configuration.

    Attributes:
        data_dir: Directory holding the SQLite database
        db_filename: SQLite database file name inside data_dir
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
        cache_size_pages: SQLite cache size in pages (negative = KB)
    """

    data_dir: str = "./data"
    db_filename: str = "vblog.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    cache_size_pages: int = -16000  # 16MB

    @property
    def db_path(self) -> Path:
        return Path(self.data_dir) / self.db_filename

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            data_dir=os.getenv("DATA_DIR", "./data"),
            db_filename=os.getenv("DB_FILENAME", "vblog.db"),
            wal_mode=_env_bool("SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            cache_size_pages=int(os.getenv("SQLITE_CACHE_SIZE", "-16000")),
        )


@dataclass(frozen=True)
class AnalyticsConfig:
    """Analytics event log and aggregation configuration.

    Attributes:
        enabled: Whether the event log and aggregation engine are wired up
        queue_max_size: Bound on events waiting in the dispatcher queue
        failure_buffer_size: Bound on recorded dispatch failures kept for inspection
        default_type: Event type used by aggregations when none is given
        weekly_window_days: Default trailing window for weekday averages
        version_markers_path: JSON file with release markers for charts
    """

    enabled: bool = True
    queue_max_size: int = 1000
    failure_buffer_size: int = 100
    default_type: str = "visit"
    weekly_window_days: int = 28
    version_markers_path: str = "version_releases.json"

    @classmethod
    def from_env(cls) -> AnalyticsConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=_env_bool("ANALYTICS_ENABLED", "true"),
            queue_max_size=int(os.getenv("ANALYTICS_QUEUE_SIZE", "1000")),
            failure_buffer_size=int(os.getenv("ANALYTICS_FAILURE_BUFFER", "100")),
            default_type=os.getenv("ANALYTICS_DEFAULT_TYPE", "visit"),
            weekly_window_days=int(os.getenv("ANALYTICS_WEEKLY_DAYS", "28")),
            version_markers_path=os.getenv("VERSION_MARKERS_PATH", "version_releases.json"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class CoreConfig:
    """Complete core configuration.

    Attributes:
        storage: Durable store configuration
        analytics: Analytics configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> CoreConfig:
        """Load complete configuration from environment variables.

        Returns:
            CoreConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            analytics=AnalyticsConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.storage.db_filename:
            raise ValueError("DB_FILENAME must not be empty")
        if self.storage.busy_timeout_ms < 0:
            raise ValueError("SQLITE_BUSY_TIMEOUT_MS must be >= 0")

        if self.analytics.queue_max_size < 1:
            raise ValueError("ANALYTICS_QUEUE_SIZE must be >= 1")
        if self.analytics.failure_buffer_size < 1:
            raise ValueError("ANALYTICS_FAILURE_BUFFER must be >= 1")
        if self.analytics.weekly_window_days < 1:
            raise ValueError("ANALYTICS_WEEKLY_DAYS must be >= 1")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on bootstrap."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Core configuration loaded",
            extra={
                "db_path": str(self.storage.db_path),
                "wal_mode": self.storage.wal_mode,
                "analytics_enabled": self.analytics.enabled,
                "analytics_queue_size": self.analytics.queue_max_size,
                "log_level": self.observability.log_level,
            },
        )

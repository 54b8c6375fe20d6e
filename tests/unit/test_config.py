"""
Unit tests for environment-based configuration.
"""

from pathlib import Path

import pytest

from vblog.vblog_core.config import AnalyticsConfig, CoreConfig, StorageConfig


class TestCoreConfig:
    """Tests for CoreConfig.from_env() and validate()."""

    def test_defaults(self, monkeypatch):
        for name in (
            "DATA_DIR",
            "DB_FILENAME",
            "SQLITE_WAL_MODE",
            "ANALYTICS_ENABLED",
            "ANALYTICS_DEFAULT_TYPE",
            "ANALYTICS_WEEKLY_DAYS",
            "LOG_FORMAT",
        ):
            monkeypatch.delenv(name, raising=False)

        config = CoreConfig.from_env()

        assert config.storage.db_path == Path("./data") / "vblog.db"
        assert config.storage.wal_mode is True
        assert config.analytics.enabled is True
        assert config.analytics.default_type == "visit"
        assert config.analytics.weekly_window_days == 28
        assert config.observability.log_format == "json"

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        monkeypatch.setenv("DB_FILENAME", "blog.sqlite")
        monkeypatch.setenv("SQLITE_WAL_MODE", "false")
        monkeypatch.setenv("ANALYTICS_ENABLED", "False")
        monkeypatch.setenv("ANALYTICS_QUEUE_SIZE", "10")
        monkeypatch.setenv("ANALYTICS_WEEKLY_DAYS", "7")
        monkeypatch.setenv("LOG_FORMAT", "text")

        config = CoreConfig.from_env()

        assert config.storage.db_path == tmp_path / "blog.sqlite"
        assert config.storage.wal_mode is False
        assert config.analytics.enabled is False
        assert config.analytics.queue_max_size == 10
        assert config.analytics.weekly_window_days == 7
        assert config.observability.log_format == "text"

    def test_invalid_log_format(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "xml")
        with pytest.raises(ValueError, match="LOG_FORMAT"):
            CoreConfig.from_env()

    @pytest.mark.parametrize(
        "analytics",
        [
            AnalyticsConfig(queue_max_size=0),
            AnalyticsConfig(failure_buffer_size=0),
            AnalyticsConfig(weekly_window_days=0),
        ],
    )
    def test_invalid_analytics(self, analytics):
        with pytest.raises(ValueError):
            CoreConfig(analytics=analytics).validate()

    def test_empty_db_filename(self):
        with pytest.raises(ValueError, match="DB_FILENAME"):
            CoreConfig(storage=StorageConfig(db_filename="")).validate()

    def test_config_is_frozen(self):
        config = StorageConfig()
        with pytest.raises(AttributeError):
            config.data_dir = "/tmp"

"""
Tests for settings loading and the grouped configuration views.
"""

import pytest
from pydantic import ValidationError

from reddit_notifier import config
from reddit_notifier.config import MAX_RATE_LIMIT_PER_MINUTE, Settings


class TestSettings:
    """Test Settings validation and defaults."""

    def test_defaults(self):
        settings = Settings(_env_file=None, database_url="sqlite://data.db")

        assert settings.reddit_rate_limit_per_minute == 4
        assert settings.poll_interval_seconds == 60.0
        assert settings.reconcile_interval_seconds == 30.0
        assert settings.post_max_age_hours == 24.0
        assert settings.delivery_max_attempts == 3
        assert settings.db_max_retries == 5
        assert settings.db_initial_delay_ms == 500
        assert settings.db_max_delay_ms == 5000
        assert settings.ledger_retention_days == 30
        assert settings.log_level == "INFO"
        assert settings.log_format == "json"

    def test_rate_limit_is_capped(self):
        settings = Settings(
            _env_file=None,
            database_url="sqlite://data.db",
            reddit_rate_limit_per_minute=500,
        )

        assert settings.reddit_rate_limit_per_minute == MAX_RATE_LIMIT_PER_MINUTE

    def test_rate_limit_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(
                _env_file=None,
                database_url="sqlite://data.db",
                reddit_rate_limit_per_minute=0,
            )

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, database_url="sqlite://data.db", log_level="LOUD")

    def test_log_settings_are_normalized(self):
        settings = Settings(
            _env_file=None,
            database_url="sqlite://data.db",
            log_level="debug",
            log_format="CONSOLE",
        )

        assert settings.log_level == "DEBUG"
        assert settings.log_format == "console"

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValidationError):
            Settings(
                _env_file=None, database_url="sqlite://data.db", delivery_max_attempts=0
            )

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite://env.db")
        monkeypatch.setenv("POLL_INTERVAL_SECONDS", "15")
        monkeypatch.setenv("REDDIT_RATE_LIMIT_PER_MINUTE", "10")

        settings = Settings(_env_file=None)

        assert settings.database_url == "sqlite://env.db"
        assert settings.poll_interval_seconds == 15.0
        assert settings.reddit_rate_limit_per_minute == 10


class TestConfigViews:
    """Test the grouped configuration properties."""

    def test_polling_config(self):
        settings = Settings(
            _env_file=None,
            database_url="sqlite://data.db",
            reddit_rate_limit_per_minute=8,
            poller_stop_timeout_seconds=5,
        )

        polling = settings.polling_config

        assert polling.rate_limit_per_minute == 8
        assert polling.rate_limit_window_seconds == 60.0
        assert polling.stop_timeout_seconds == 5.0

    def test_storage_config(self):
        settings = Settings(
            _env_file=None, database_url="sqlite://data.db", db_max_retries=2
        )

        storage = settings.storage_config

        assert storage.url == "sqlite://data.db"
        assert storage.max_retries == 2
        assert storage.initial_delay_ms == 500

    def test_delivery_config(self):
        settings = Settings(
            _env_file=None, database_url="sqlite://data.db", http_timeout_seconds=3
        )

        delivery = settings.delivery_config

        assert delivery.timeout_seconds == 3.0
        assert delivery.max_attempts == 3


class TestGetSettings:
    """Test the global settings accessor."""

    def test_missing_database_url_has_helpful_error(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setattr(config, "_settings_instance", None)

        with pytest.raises(ValueError, match="DATABASE_URL"):
            config.get_settings()

    def test_instance_is_cached(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("DATABASE_URL", "sqlite://cached.db")
        monkeypatch.setattr(config, "_settings_instance", None)

        first = config.get_settings()

        assert config.get_settings() is first
        assert config.settings is first

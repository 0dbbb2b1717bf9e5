"""Tests for configuration loading."""

import pytest
from dataclasses import fields

from config.settings import Settings, parse_weekdays


class TestParseWeekdays:
    """Test closed weekday parsing."""

    def test_names_and_abbreviations(self):
        """Test full names and unambiguous prefixes."""
        assert parse_weekdays("monday") == [0]
        assert parse_weekdays("Mon, sun") == [0, 6]

    def test_numbers(self):
        """Test Python weekday numbers."""
        assert parse_weekdays("0,6") == [0, 6]

    def test_duplicates_are_collapsed(self):
        """Test repeated entries appear once."""
        assert parse_weekdays("monday,0,mon") == [0]

    def test_empty_means_no_closed_days(self):
        """Test an empty value disables closed days."""
        assert parse_weekdays("") == []
        assert parse_weekdays(" , ") == []

    @pytest.mark.parametrize("value", ["funday", "t", "7"])
    def test_invalid_values(self, value):
        """Test unknown, ambiguous and out-of-range entries are rejected."""
        with pytest.raises(ValueError):
            parse_weekdays(value)


class TestSettings:
    """Test environment driven settings."""

    def test_loads_test_environment(self):
        """Test values from the test environment."""
        settings = Settings()
        assert settings.reporting.timezone == "Asia/Kolkata"
        assert settings.reporting.closed_weekdays == [0]
        assert settings.reporting.evidence_timeout_seconds == 0.5
        assert settings.cache.enabled is False
        assert settings.webhooks.secret == "test-webhook-secret"

    def test_overrides(self, monkeypatch):
        """Test environment overrides."""
        monkeypatch.setenv("CLOSED_WEEKDAYS", "sunday")
        monkeypatch.setenv("MAX_CONCURRENT_EVALUATIONS", "7")
        monkeypatch.setenv("MONITOR_INTERVAL_MINUTES", "15")

        settings = Settings()

        assert settings.reporting.closed_weekdays == [6]
        assert settings.reporting.max_concurrent_evaluations == 7
        assert settings.agent.monitor_interval_minutes == 15

    def test_empty_webhook_secret_is_none(self, monkeypatch):
        """Test an empty secret is treated as unset."""
        monkeypatch.setenv("EVIDENCE_WEBHOOK_SECRET", "")
        assert Settings().webhooks.secret is None

    def test_empty_timezone_uses_default(self, monkeypatch):
        """Test an empty timezone falls back to IST."""
        monkeypatch.setenv("REPORTING_TIMEZONE", "")
        assert Settings().reporting.timezone == "Asia/Kolkata"

    def test_agent_config_fields(self, monkeypatch):
        """Test the agent section carries only the settings the service reads."""
        monkeypatch.setenv("DATABASE_URL", "sqlite:///markets.db")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        agent = Settings().agent

        assert {field.name for field in fields(agent)} == {"monitor_interval_minutes", "log_level", "database_url"}
        assert agent.database_url == "sqlite:///markets.db"
        assert agent.log_level == "DEBUG"

"""Tests for centralized logging configuration."""

import logging

import pytest
from pydantic import ValidationError

from config import Settings
from logging_config import QUIET_LOGGERS, setup_logging


@pytest.fixture
def configure(monkeypatch):
    """Run setup_logging() with LOG_LEVEL taken from the environment."""

    def _configure(level: str) -> None:
        monkeypatch.setenv("LOG_LEVEL", level)
        monkeypatch.setattr("logging_config.settings", Settings())
        setup_logging()

    return _configure


class TestSetupLogging:
    """Tests for setup_logging()."""

    @pytest.mark.parametrize("level", ["INFO", "DEBUG", "WARNING"])
    def test_root_level_from_settings(self, configure, level):
        configure(level)

        assert logging.getLogger().level == getattr(logging, level)

    def test_relink_loggers_follow_root(self, configure):
        """Service loggers have no own level, so LOG_LEVEL=DEBUG reaches them."""
        configure("DEBUG")

        for name in (
            "services.relink_service",
            "services.relink_migration_service",
            "integrations.simplefin_client",
        ):
            assert logging.getLogger(name).getEffectiveLevel() == logging.DEBUG

    def test_library_loggers_pinned_to_warning(self, configure):
        configure("DEBUG")

        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING, (
                f"{name} logger not suppressed"
            )
        assert "alembic.runtime.migration" in QUIET_LOGGERS


class TestLogLevelSetting:
    def test_invalid_log_level_rejected(self, monkeypatch):
        """Invalid LOG_LEVEL values should raise a validation error."""
        monkeypatch.setenv("LOG_LEVEL", "VERBOS")
        with pytest.raises(ValidationError, match="LOG_LEVEL"):
            Settings()

    def test_log_level_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")

        assert Settings().LOG_LEVEL == "DEBUG"

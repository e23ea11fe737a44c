"""Tests for application settings."""

from __future__ import annotations

from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from quest_tracker.shared.config import override_settings


class TestSettings:
    """Tests for settings validation and derived values."""

    def test_defaults(self):
        settings = override_settings(environment="development")

        assert settings.quest_timezone == "America/New_York"
        assert settings.quest_zone == ZoneInfo("America/New_York")
        assert settings.max_update_retries == 10
        assert settings.seed_default_quests is True

    def test_log_level_is_upper_cased(self):
        assert override_settings(log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"environment": "staging"},
            {"log_level": "verbose"},
            {"quest_timezone": "Mars/Olympus_Mons"},
            {"max_update_retries": 0},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValidationError):
            override_settings(**overrides)

    def test_test_database_url_used_only_when_testing(self):
        testing = override_settings(
            environment="testing",
            database_url="postgresql+asyncpg://prod/db",
            test_database_url="sqlite+aiosqlite:///:memory:",
        )
        development = override_settings(
            environment="development",
            database_url="postgresql+asyncpg://prod/db",
            test_database_url="sqlite+aiosqlite:///:memory:",
        )

        assert testing.effective_database_url == "sqlite+aiosqlite:///:memory:"
        assert development.effective_database_url == "postgresql+asyncpg://prod/db"

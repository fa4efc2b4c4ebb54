"""
Name: Settings Tests

Responsibilities:
  - Validate defaults and environment overrides
  - Validate reuse windows, retention period and timezone validators
  - Validate JSON-valued settings parsing

Notes:
  - Uses monkeypatch to set environment variables
"""

import pytest
from pydantic import ValidationError

from logify.crosscutting.config import Settings, get_settings

pytestmark = pytest.mark.unit


class TestSettings:
    def test_defaults(self):
        settings = Settings()

        assert settings.get_tracked_roles() == frozenset({"administrator"})
        assert settings.content_reuse_window_seconds == 300
        assert settings.activity_reuse_window_seconds == 2
        assert settings.keep_period_units == "year"
        assert settings.is_test_env()

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TRACKED_ROLES", "administrator, editor,,")
        monkeypatch.setenv("KEEP_PERIOD_QUANTITY", "6")
        monkeypatch.setenv("KEEP_PERIOD_UNITS", "Months")
        monkeypatch.setenv("CREATION_CLASSIFICATIONS", "Plugin Installed")

        settings = Settings()

        assert settings.get_tracked_roles() == frozenset({"administrator", "editor"})
        assert settings.keep_period_quantity == 6
        assert settings.keep_period_units == "month"
        assert settings.get_creation_classifications() == frozenset({"Plugin Installed"})

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    @pytest.mark.parametrize(
        "name,value",
        [
            ("CONTENT_REUSE_WINDOW_SECONDS", "-1"),
            ("ACTIVITY_REUSE_WINDOW_SECONDS", "-5"),
            ("KEEP_PERIOD_QUANTITY", "0"),
            ("KEEP_PERIOD_UNITS", "fortnight"),
            ("LOCAL_TIMEZONE", "Mars/Olympus"),
            ("REUSE_WINDOWS_CONFIG", "not json"),
            ("REUSE_WINDOWS_CONFIG", '{"Post Updated": -3}'),
            ("INTRINSIC_KEYS_CONFIG", '{"Post Updated": "post_title"}'),
            ("INTRINSIC_KEYS_CONFIG", "[1, 2]"),
        ],
    )
    def test_invalid_values_fail_at_startup(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ValidationError):
            Settings()


class TestJsonConfigs:
    def test_reuse_windows_and_intrinsic_keys(self, monkeypatch):
        monkeypatch.setenv("REUSE_WINDOWS_CONFIG", '{"Menu Updated": 60}')
        monkeypatch.setenv("INTRINSIC_KEYS_CONFIG", '{"Post Updated": ["post_title"]}')

        settings = Settings()

        assert settings.get_reuse_windows() == {"Menu Updated": 60}
        assert settings.get_intrinsic_keys() == {"Post Updated": ["post_title"]}

    def test_blank_json_is_empty(self):
        settings = Settings()
        assert settings.get_reuse_windows() == {}
        assert settings.get_intrinsic_keys() == {}

    def test_local_timezone(self, monkeypatch):
        monkeypatch.setenv("LOCAL_TIMEZONE", "Europe/Madrid")
        assert Settings().get_local_timezone().key == "Europe/Madrid"

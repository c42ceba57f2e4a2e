"""
Tests for configuration module.
"""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from sara.config import Settings, clear_settings_cache, get_settings


class TestSettingsValidation:
    """Tests for Settings validation."""

    def test_settings_loads_from_env(self, mock_env_vars: dict[str, str]) -> None:
        """Test that settings correctly loads from environment variables."""
        settings = get_settings()

        assert settings.BACKEND_API_KEY == "anon-test-key-1234567890"
        assert settings.LOG_LEVEL == "DEBUG"

    def test_trailing_slash_is_stripped(self, mock_env_vars: dict[str, str]) -> None:
        """Test that BACKEND_URL loses its trailing slash."""
        settings = get_settings()
        assert settings.BACKEND_URL == "https://test-project.supabase.co"

    def test_backend_url_requires_http_scheme(self) -> None:
        """Test that a URL without http(s) scheme is rejected."""
        env_vars = {"BACKEND_URL": "test-project.supabase.co", "BACKEND_API_KEY": "key"}

        with patch.dict(os.environ, env_vars, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

        assert "http" in str(exc_info.value)

    def test_validation_fails_without_api_key(self) -> None:
        """Test that BACKEND_API_KEY is required."""
        with patch.dict(os.environ, {"BACKEND_URL": "https://x.supabase.co"}, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

        assert "BACKEND_API_KEY" in str(exc_info.value)

    def test_simulation_interval_has_a_floor(self, mock_env_vars: dict[str, str]) -> None:
        """Test that SIMULATION_INTERVAL_MS below 50 is rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, SIMULATION_INTERVAL_MS=10)

    def test_unknown_tier_rejected(self, mock_env_vars: dict[str, str]) -> None:
        """Test that DEFAULT_TIER only accepts primary or secondary."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, DEFAULT_TIER="tertiary")


class TestSettingsDefaults:
    """Tests for default values."""

    def test_defaults(self, mock_env_vars: dict[str, str]) -> None:
        settings = Settings(_env_file=None)

        assert settings.REQUEST_TIMEOUT_SECONDS == 90.0
        assert settings.SIMULATION_INTERVAL_MS == 2100
        assert settings.DEFAULT_TIER == "secondary"
        assert settings.DEFAULT_MODE == "multi"
        assert settings.DEFAULT_PATH == "simulated"
        assert settings.HISTORY_WINDOW == 8
        assert settings.PREVIEW_CHARS == 220
        assert settings.FUNCTION_MULTI_SECONDARY == "multiagent-openrouter"

    def test_simulation_interval_seconds(self, mock_env_vars: dict[str, str]) -> None:
        settings = Settings(_env_file=None)
        assert settings.simulation_interval_seconds == pytest.approx(2.1)


class TestSettingsDisplay:
    """Tests for settings display."""

    def test_redacted_display_hides_key(self, mock_settings: Settings) -> None:
        """Test that the API key is redacted in display output."""
        display = mock_settings.redacted_display()

        assert display["BACKEND_API_KEY"] != "anon-test-key-1234567890"
        assert "..." in display["BACKEND_API_KEY"]
        assert display["BACKEND_URL"] == "https://test-project.supabase.co"

    def test_short_key_fully_hidden(self, mock_env_vars: dict[str, str]) -> None:
        settings = Settings(_env_file=None, BACKEND_API_KEY="short")
        assert settings.redacted_display()["BACKEND_API_KEY"] == "***"


class TestSettingsCache:
    """Tests for settings caching."""

    def test_get_settings_is_cached(self, mock_env_vars: dict[str, str]) -> None:
        assert get_settings() is get_settings()

    def test_clear_settings_cache(self, mock_env_vars: dict[str, str]) -> None:
        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first

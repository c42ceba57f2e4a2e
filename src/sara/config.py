"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates required fields and provides typed access to settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Required:
        BACKEND_URL: Base URL of the function host (e.g. https://xyz.supabase.co)
        BACKEND_API_KEY: Anonymous key sent as bearer token and ``apikey`` header

    Optional:
        REQUEST_TIMEOUT_SECONDS: Deadline for the simulated (request/response) path
        STREAM_READ_TIMEOUT_SECONDS: Read timeout between stream chunks
        SIMULATION_INTERVAL_MS: Cadence of simulated agent progress
        DEFAULT_TIER: Provider tier used until a fallback switches it
        HISTORY_WINDOW: Number of past turns sent with each request
        PREVIEW_CHARS: Cap for per-agent output previews
        LOG_LEVEL: Logging level
        LOG_FILE: Optional JSON Lines log file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    BACKEND_URL: str = Field(..., description="Base URL of the function host")
    BACKEND_API_KEY: str = Field(..., description="Anonymous API key for the function host")

    # Timing
    REQUEST_TIMEOUT_SECONDS: float = Field(
        default=90.0, gt=0.0, description="Deadline for the request/response path"
    )
    STREAM_READ_TIMEOUT_SECONDS: float = Field(
        default=120.0, gt=0.0, description="Read timeout for the event stream"
    )
    SIMULATION_INTERVAL_MS: int = Field(
        default=2100, ge=50, description="Cadence of simulated agent progress"
    )

    # Run defaults
    DEFAULT_TIER: Literal["primary", "secondary"] = Field(
        default="secondary", description="Initial provider tier"
    )
    DEFAULT_MODE: Literal["single", "multi"] = Field(default="multi")
    DEFAULT_PATH: Literal["streamed", "simulated"] = Field(default="simulated")
    HISTORY_WINDOW: int = Field(default=8, ge=0, le=50)
    PREVIEW_CHARS: int = Field(default=220, ge=20)

    # Provider labels shown in diagnostics
    PRIMARY_PROVIDER: str = Field(default="Groq")
    SECONDARY_PROVIDER: str = Field(default="OpenRouter")

    # Backend function per (mode, tier)
    FUNCTION_SINGLE_PRIMARY: str = Field(default="chat")
    FUNCTION_SINGLE_SECONDARY: str = Field(default="chat-openrouter")
    FUNCTION_MULTI_PRIMARY: str = Field(default="multiagent")
    FUNCTION_MULTI_SECONDARY: str = Field(default="multiagent-openrouter")

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON Lines log file")

    @field_validator("BACKEND_URL")
    @classmethod
    def validate_backend_url(cls, v: str) -> str:
        """Require an http(s) URL and drop any trailing slash."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("BACKEND_URL must start with http:// or https://")
        return v.rstrip("/")

    @property
    def simulation_interval_seconds(self) -> float:
        return self.SIMULATION_INTERVAL_MS / 1000.0

    def redacted_display(self) -> dict[str, str | int | float | None]:
        """Return settings with the API key redacted for display."""
        key = self.BACKEND_API_KEY
        redacted = f"{key[:8]}...{key[-4:]}" if len(key) > 12 else "***"

        return {
            "BACKEND_URL": self.BACKEND_URL,
            "BACKEND_API_KEY": redacted,
            "REQUEST_TIMEOUT_SECONDS": self.REQUEST_TIMEOUT_SECONDS,
            "STREAM_READ_TIMEOUT_SECONDS": self.STREAM_READ_TIMEOUT_SECONDS,
            "SIMULATION_INTERVAL_MS": self.SIMULATION_INTERVAL_MS,
            "DEFAULT_TIER": self.DEFAULT_TIER,
            "DEFAULT_MODE": self.DEFAULT_MODE,
            "DEFAULT_PATH": self.DEFAULT_PATH,
            "HISTORY_WINDOW": self.HISTORY_WINDOW,
            "PREVIEW_CHARS": self.PREVIEW_CHARS,
            "PRIMARY_PROVIDER": self.PRIMARY_PROVIDER,
            "SECONDARY_PROVIDER": self.SECONDARY_PROVIDER,
            "FUNCTION_SINGLE_PRIMARY": self.FUNCTION_SINGLE_PRIMARY,
            "FUNCTION_SINGLE_SECONDARY": self.FUNCTION_SINGLE_SECONDARY,
            "FUNCTION_MULTI_PRIMARY": self.FUNCTION_MULTI_PRIMARY,
            "FUNCTION_MULTI_SECONDARY": self.FUNCTION_MULTI_SECONDARY,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()

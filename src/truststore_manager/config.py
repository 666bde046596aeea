"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables (12-factor app)
  - Fall back to .env file
  - Validate types and constraints at startup
  - Keep the API access token out of logs (SecretStr)

Architecture: Only AppSettings is a BaseSettings instance. Sub-settings are plain
BaseModel classes populated by AppSettings via env_nested_delimiter="__", so the env
var API__BASE_URL maps to api.base_url, TIMEOUTS__DELETE maps to timeouts.delete, etc.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"

_ONE_HOUR = 3600.0


class ApiSettings(BaseModel):
    """
    Remote trust-store API connection.

    Request signing, when the deployment needs it, is supplied in code as an
    httpx.Auth; `access_token` covers plain bearer-token deployments.
    """

    base_url: str = Field(description="Service root, e.g. https://host.example.net")
    access_token: SecretStr | None = Field(default=None, description="Bearer token sent on every call")
    http_timeout_seconds: int = Field(default=60, ge=1)
    max_attempts: int = Field(default=3, ge=1, le=10, description="Attempts for idempotent reads")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        """Reject anything that is not an absolute http(s) URL."""
        stripped = value.strip()
        if not stripped.startswith(("http://", "https://")):
            raise ValueError(f"base_url must start with http:// or https://, got: {value!r}")
        return stripped.rstrip("/")


class TimeoutSettings(BaseModel):
    """Default per-operation budgets in seconds; the host's timeouts block overrides them."""

    create: float = Field(default=_ONE_HOUR, gt=0)
    update: float = Field(default=_ONE_HOUR, gt=0)
    delete: float = Field(default=_ONE_HOUR, gt=0)


class PollingSettings(BaseModel):
    """Intervals used when the service gives no usable retryAfter hint."""

    activation_interval_seconds: float = Field(default=5.0, gt=0)
    deletion_interval_seconds: float = Field(default=10.0, gt=0)
    deletion_initial_delay_seconds: float = Field(default=0.01, ge=0)


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    api: ApiSettings
    timeouts: TimeoutSettings = Field(default_factory=lambda: TimeoutSettings())
    polling: PollingSettings = Field(default_factory=lambda: PollingSettings())

    log_level: str = Field(default="INFO")

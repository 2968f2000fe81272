"""TrustLens settings, read from the environment with pydantic-settings.

``APP_ENV`` (development, testing, staging, production) selects an optional
``.env.<env>`` file at the repository root. Settings are grouped by prefix:
``LLM_*`` for the vision provider, ``APP_*`` for throttling and caching,
``BARCODE_*`` for the product lookup API and ``LOG_*`` for logging.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILES = {
    env: f".env.{env}" for env in ("development", "testing", "staging", "production")
}

_env_path = PROJECT_ROOT / ENV_FILES.get(APP_ENV, ENV_FILES["development"])

# Nested groups are separate BaseSettings and ignore env_file, so the file is
# pushed into os.environ before any of them is built
if _env_path.is_file() and not os.getenv("TESTING"):
    load_dotenv(_env_path, override=True)


def _build_llm_settings() -> "LLMSettings":
    # Fields are filled from the environment, not constructor arguments
    return LLMSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    return AppSettings()  # type: ignore[call-arg]


def _build_barcode_settings() -> "BarcodeSettings":
    return BarcodeSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class LLMSettings(BaseSettings):
    """Vision model provider configuration.

    Validation of provider-specific requirements happens in the factory.
    """

    provider: str = Field(
        "gemini",
        description="Vision provider name (gemini or openai)",
    )
    model: str = Field(
        "gemini-1.5-flash",
        description="Model name (e.g., gemini-1.5-flash, anthropic/claude-3.5-sonnet)",
    )
    api_key: str | None = Field(
        None,
        description="API key for the selected provider",
    )
    base_url: str | None = Field(
        None,
        description="Custom API endpoint (e.g., https://openrouter.ai/api/v1)",
    )
    timeout_seconds: float = Field(
        30.0,
        description="Request timeout in seconds",
    )
    temperature: float = Field(
        0.1,
        description="Sampling temperature for real-time scans",
        ge=0.0,
        le=2.0,
    )
    max_output_tokens: int = Field(
        1024,
        description="Upper bound on generated tokens per scan",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable per-client rate limiting on the real-time scan endpoint",
    )
    rate_limit_requests: int = Field(
        15,
        description="Maximum number of scans allowed per rolling window (per client)",
        ge=1,
    )
    rate_limit_window_seconds: int = Field(
        60,
        description="Rolling window size in seconds",
        ge=1,
    )
    rate_limit_block_seconds: int | None = Field(
        None,
        description="Optional lockout applied after a rejection (disabled when unset)",
        ge=1,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    cache_ttl_seconds: float = Field(
        10.0,
        description="Lifetime of a cached scan result in seconds",
        gt=0,
    )
    cache_sweep_probability: float = Field(
        0.1,
        description="Chance that a cache write also sweeps entries older than twice the TTL",
        ge=0.0,
        le=1.0,
    )
    cache_max_entries: int | None = Field(
        1024,
        description="Upper bound on cached scan results (None means unbounded)",
        ge=1,
    )
    fingerprint_strategy: Literal["content_hash", "prefix"] = Field(
        "content_hash",
        description="How scan cache keys are derived from the image payload",
    )
    fingerprint_prefix_chars: int = Field(
        50,
        description="Number of base64 characters used by the 'prefix' strategy",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class BarcodeSettings(BaseSettings):
    """Barcode Lookup API configuration."""

    api_key: str | None = Field(
        None,
        description="Barcode Lookup API key",
    )
    base_url: str = Field(
        "https://api.barcodelookup.com/v3",
        description="Barcode Lookup API base URL",
    )
    timeout_seconds: float = Field(
        10.0,
        description="Request timeout in seconds",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="BARCODE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int | None = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (None disables rotation)",
    )
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """All settings groups. Malformed values fail at import time."""

    app_env: str = APP_ENV
    llm: LLMSettings = Field(default_factory=_build_llm_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    barcode: BarcodeSettings = Field(default_factory=_build_barcode_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()

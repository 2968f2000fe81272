"""Pytest configuration and fixtures shared across all test modules.

This file is loaded by pytest before any test module is imported, so the
environment below is in place before ``trustlens.core.config`` builds the
global settings. ``TESTING`` keeps the .env.{APP_ENV} file from being loaded.
"""

import os

import pytest

# Must be set before anything imports trustlens.core.config
os.environ["TESTING"] = "true"

os.environ.setdefault("LLM_PROVIDER", "gemini")
os.environ.setdefault("LLM_MODEL", "gemini-1.5-flash")
os.environ.setdefault("LLM_API_KEY", "test-key-123")
os.environ.setdefault("BARCODE_API_KEY", "test-barcode-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")


@pytest.fixture(autouse=True)
def fresh_rate_limiter(monkeypatch: pytest.MonkeyPatch) -> None:
    """Give every test an empty process-wide rate limiter."""
    from trustlens.core import rate_limit

    monkeypatch.setattr(rate_limit, "_limiter", None)
    monkeypatch.setattr(rate_limit, "_limiter_config", None)

"""Unit tests for configuration management."""

import os
from collections.abc import Generator

import pytest
from pydantic import ValidationError

from invoicer.shared.config import Settings, get_settings


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables before and after test."""
    original_env = dict(os.environ)
    env_vars = [k for k in os.environ if k.startswith("APP_")]
    for var in env_vars:
        del os.environ[var]
    yield
    os.environ.clear()
    os.environ.update(original_env)


def test_settings_defaults(clean_env: None) -> None:
    """Test that settings have correct default values."""
    settings = Settings(_env_file=None)

    assert settings.environment == "development"
    assert settings.log_level == "INFO"
    assert settings.service_name == "payment-text-invoicer"
    assert settings.service_version == "0.1.0"
    assert settings.ai_provider == "openai"
    assert settings.ai_timeout_seconds == 15.0
    assert settings.invoice_prefix == "INV"
    assert settings.default_currency == "INR"
    assert settings.storage_backend == "memory"


def test_settings_from_env_vars(clean_env: None) -> None:
    """Test that settings can be overridden via environment variables."""
    os.environ["APP_ENVIRONMENT"] = "production"
    os.environ["APP_LOG_LEVEL"] = "ERROR"
    os.environ["APP_AI_PROVIDER"] = "ollama"
    os.environ["APP_AI_TIMEOUT_SECONDS"] = "5"
    os.environ["APP_INVOICE_PREFIX"] = "BILL"

    settings = Settings(_env_file=None)

    assert settings.environment == "production"
    assert settings.log_level == "ERROR"
    assert settings.ai_provider == "ollama"
    assert settings.ai_timeout_seconds == 5.0
    assert settings.invoice_prefix == "BILL"


def test_settings_case_insensitive(clean_env: None) -> None:
    """Test that environment variables are case-insensitive."""
    os.environ["app_log_level"] = "DEBUG"

    settings = Settings(_env_file=None)

    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "overrides",
    [
        {"invoice_prefix": "inv"},
        {"invoice_prefix": "INV-1"},
        {"ai_timeout_seconds": 0},
        {"ai_timeout_seconds": 120},
        {"storage_backend": "redis"},
        {"log_level": "TRACE"},
    ],
)
def test_settings_rejects_invalid_values(clean_env: None, overrides: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)  # type: ignore[arg-type]


def test_get_settings(clean_env: None) -> None:
    """Test get_settings factory function."""
    settings = get_settings()

    assert isinstance(settings, Settings)
    assert settings.service_name == "payment-text-invoicer"

"""Unit tests for configuration management."""

import os
from collections.abc import Generator

import pytest
from pydantic import ValidationError

from services.shared.config import Settings, get_settings


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
    settings = Settings()

    assert settings.environment == "development"
    assert settings.log_level == "INFO"
    assert settings.service_name == "invoice-extraction-service"
    assert settings.service_version == "0.1.0"
    assert settings.inference_provider == "gemini"
    assert settings.repository_backend == "memory"


def test_generation_defaults(clean_env: None) -> None:
    """Decoding parameters default to deterministic plain-text generation."""
    settings = Settings()

    assert settings.generation_temperature == 0.0
    assert settings.generation_top_p == 0.95
    assert settings.generation_top_k == 40
    assert settings.generation_max_output_tokens == 8192
    assert settings.generation_response_mime_type == "text/plain"


def test_fetch_and_artifact_defaults(clean_env: None) -> None:
    """Fetch caps and artifact settings have sensible defaults."""
    settings = Settings()

    assert settings.fetch_max_redirects == 5
    assert settings.fetch_timeout_seconds > 0
    assert settings.preview_chars == 1200
    assert settings.artifact_dir.name == "invoice-extraction"


def test_settings_from_env_vars(clean_env: None) -> None:
    """Test that settings can be overridden via environment variables."""
    os.environ["APP_ENVIRONMENT"] = "production"
    os.environ["APP_LOG_LEVEL"] = "ERROR"
    os.environ["APP_INFERENCE_PROVIDER"] = "ollama"
    os.environ["APP_ARTIFACT_DIR"] = "/var/tmp/debug"

    settings = Settings()

    assert settings.environment == "production"
    assert settings.log_level == "ERROR"
    assert settings.inference_provider == "ollama"
    assert str(settings.artifact_dir) == "/var/tmp/debug"


def test_settings_case_insensitive(clean_env: None) -> None:
    """Test that environment variables are case insensitive."""
    os.environ["app_log_level"] = "DEBUG"

    settings = Settings()

    assert settings.log_level == "DEBUG"


def test_redirect_cap_is_enforced(clean_env: None) -> None:
    """More than five redirects cannot be configured."""
    with pytest.raises(ValidationError):
        Settings(fetch_max_redirects=10)


def test_unknown_provider_rejected(clean_env: None) -> None:
    """Only registered provider names are accepted."""
    with pytest.raises(ValidationError):
        Settings(inference_provider="donut")


def test_get_settings_factory(clean_env: None) -> None:
    """Test that factory function returns Settings instance."""
    settings = get_settings()

    assert isinstance(settings, Settings)
    assert settings.service_name == "invoice-extraction-service"

"""Unit tests for settings loading."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from splitsmart.config import Settings

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate settings from the developer's environment and .env file."""
    monkeypatch.chdir(tmp_path)
    for name in ("ANTHROPIC_API_KEY", "SPLITSMART_ANTHROPIC_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings()
    assert settings.anthropic_api_key is None
    assert settings.model == "claude-haiku-4-5"
    assert settings.max_tokens == 4096
    assert settings.request_timeout == 60.0
    assert settings.total_tolerance == Decimal("0.01")
    assert settings.log_level == "WARNING"


def test_reads_prefixed_env(monkeypatch):
    monkeypatch.setenv("SPLITSMART_MODEL", "claude-sonnet-4-5")
    monkeypatch.setenv("SPLITSMART_TOTAL_TOLERANCE", "0.05")

    settings = Settings()

    assert settings.model == "claude-sonnet-4-5"
    assert settings.total_tolerance == Decimal("0.05")


def test_reads_standard_api_key(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    assert Settings().anthropic_api_key == "sk-test"


def test_reads_dotenv_file(tmp_path):
    (tmp_path / ".env").write_text("SPLITSMART_LOG_LEVEL=DEBUG\n")
    assert Settings().log_level == "DEBUG"


def test_rejects_invalid_values(monkeypatch):
    monkeypatch.setenv("SPLITSMART_MAX_TOKENS", "0")
    with pytest.raises(ValidationError):
        Settings()

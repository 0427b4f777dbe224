"""Shared fixtures for the metering test suite."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from gemini_metering.config.models import MeteringConfig
from gemini_metering.config.settings import get_settings
from gemini_metering.config.store import ConfigStore
from gemini_metering.shell.detector import ShellType

API_KEY = "hak_t_abc123xyz0"


@pytest.fixture
def sample_config() -> MeteringConfig:
    """A fully populated configuration record."""
    return MeteringConfig(
        api_key=API_KEY,
        endpoint="https://api.example.com",
        email="dev@example.com",
        organization_name="Acme Corp",
        product_name="AI Platform",
        cost_multiplier=0.8,
    )


@pytest.fixture
def config_dir(tmp_path):
    return tmp_path / ".gemini"


@pytest.fixture
def posix_store(config_dir) -> ConfigStore:
    return ConfigStore(config_dir=config_dir, shell_type=ShellType.ZSH)


@pytest.fixture
def fish_store(config_dir) -> ConfigStore:
    return ConfigStore(config_dir=config_dir, shell_type=ShellType.FISH)


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set prefixed env vars and clear settings cache.

    Usage:
        override_settings(MAX_ATTEMPTS="5", LOG_LEVEL="DEBUG")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(f"REVENIUM_METERING_{key.upper()}", str(value))
        get_settings.cache_clear()

    yield _override

    get_settings.cache_clear()


def make_response(status_code: int, body: dict | None = None, text: str = "",
                  reason: str = "") -> MagicMock:
    """Stand-in for an httpx.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.reason_phrase = reason
    response.text = text
    response.json.return_value = body if body is not None else {}
    return response


def make_http_client(*responses) -> AsyncMock:
    """Stand-in for httpx.AsyncClient whose post() yields responses/raises in order."""
    client = AsyncMock()
    client.post.side_effect = list(responses)
    client.is_closed = False
    return client


OK_BODY = {
    "id": "evt-123",
    "resourceType": "otlp_logs",
    "processedEvents": 1,
    "created": "2026-10-18T12:00:00Z",
}

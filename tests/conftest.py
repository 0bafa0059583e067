"""공통 pytest 설정."""

import pytest

from app.core.config import get_settings


@pytest.fixture(autouse=True)
def _required_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.delenv("GOOGLE_PLACES_API_KEY", raising=False)
    monkeypatch.delenv("TICKETMASTER_API_KEY", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()

"""
Pytest configuration and shared fixtures.
"""
from typing import Callable

import httpx
import pytest

from location_intel.core.cache import InMemoryCacheBackend, LocationCache
from location_intel.core.config import reset_settings
from location_intel.core.models import CompetitorInfo, OpeningHours


@pytest.fixture(scope="function")
def clean_env(monkeypatch):
    """
    Clean environment for testing.

    Removes all service-related env vars and .env loading side effects
    so every test starts from defaults.
    """
    env_vars = [
        "GOOGLE_PLACES_API_KEY",
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "GROQ_API_KEY",
        "LLM_PROVIDER",
        "LLM_MODEL",
        "LLM_MAX_TOKENS",
        "UPSTASH_REDIS_REST_URL",
        "UPSTASH_REDIS_REST_TOKEN",
        "CACHE_BACKEND",
        "OVERPASS_BASE_URL",
        "PROVIDER_TIMEOUT_SECONDS",
        "AGENT_TIMEOUT_SECONDS",
        "AGENT_MAX_STEPS",
        "CONCEPT_CHECK_TIMEOUT_SECONDS",
        "LOG_LEVEL",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)

    # Reset settings singleton
    reset_settings()

    yield

    # Reset again after test
    reset_settings()


@pytest.fixture
def memory_cache():
    """Fresh in-process cache per test."""
    return LocationCache(InMemoryCacheBackend())


@pytest.fixture
def make_competitor() -> Callable[..., CompetitorInfo]:
    """Factory for CompetitorInfo with sensible defaults."""

    def _make(
        name: str,
        type: str = "cafe",
        distance_meters: int = 100,
        source: str = "commercial",
        hours=None,
        **kwargs,
    ) -> CompetitorInfo:
        opening_hours = OpeningHours(weekday_descriptions=hours) if hours else None
        return CompetitorInfo(
            name=name,
            type=type,
            distance_meters=distance_meters,
            source=source,
            opening_hours=opening_hours,
            **kwargs,
        )

    return _make


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """
    Build an httpx.AsyncClient whose requests are answered by a handler.

    Usage:
        client = mock_http(lambda request: httpx.Response(200, json={...}))
    """

    def _build(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _build

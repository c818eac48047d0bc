"""
Unit tests for the fail-open location cache.
"""
import json

import httpx
import pytest

from location_intel.core.cache import (
    SOURCE_TTLS,
    DisabledCacheBackend,
    InMemoryCacheBackend,
    LocationCache,
    UpstashCacheBackend,
    build_cache,
    build_hashed_key,
    build_location_key,
    stable_hash,
)
from location_intel.core.config import Settings
from location_intel.core.models import TransitAnalysis, TransitStop


class BrokenBackend(InMemoryCacheBackend):
    """Backend whose every operation fails."""

    async def get_raw(self, key):
        raise RuntimeError("connection refused")

    async def set_raw(self, key, value, ttl):
        raise RuntimeError("connection refused")


def _transit() -> TransitAnalysis:
    return TransitAnalysis(
        stops=[TransitStop(name="Dam", mode="tram", distance_meters=120)],
        score=1.5,
        accessibility_label="bad",
    )


# =============================================================================
# Keys
# =============================================================================


class TestKeys:
    """Tests for cache key construction."""

    @pytest.mark.unit
    def test_location_key_rounds_to_four_decimals(self):
        key = build_location_key(52.370216, 4.895168, 500, "transit")
        assert key == "buurt:52.3702:4.8952:transit:500"

    @pytest.mark.unit
    def test_nearby_points_share_a_bucket(self):
        """Points a few meters apart map to the same key."""
        assert build_location_key(52.37021, 4.89521, 500, "openmap") == build_location_key(
            52.37024, 4.89524, 500, "openmap"
        )

    @pytest.mark.unit
    def test_stable_hash_is_deterministic(self):
        assert stable_hash("smoothiebar::A|B") == stable_hash("smoothiebar::A|B")
        assert stable_hash("smoothiebar::A|B") != stable_hash("smoothiebar::A|C")
        assert len(stable_hash("anything")) == 16

    @pytest.mark.unit
    def test_hashed_key_format(self):
        key = build_hashed_key("ai-classify", "koffiebar::X")
        assert key.startswith("buurt:ai-classify:")

    @pytest.mark.unit
    def test_ttl_table(self):
        day = 24 * 60 * 60
        assert SOURCE_TTLS["demographics"] == 365 * day
        assert SOURCE_TTLS["building"] == 30 * day
        assert SOURCE_TTLS["transit"] == 90 * day
        assert SOURCE_TTLS["openmap"] == 7 * day
        assert SOURCE_TTLS["commercial"] == day
        assert SOURCE_TTLS["ai-classify"] == 7 * day
        assert SOURCE_TTLS["full-analysis"] == day


# =============================================================================
# Facade
# =============================================================================


class TestLocationCache:
    """Tests for LocationCache over the in-memory backend."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_model_round_trip(self, memory_cache):
        await memory_cache.set(52.37, 4.89, 500, "transit", _transit())

        hit = await memory_cache.get(52.37, 4.89, 500, "transit", model=TransitAnalysis)

        assert isinstance(hit, TransitAnalysis)
        assert hit.stops[0].name == "Dam"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_radius_is_part_of_the_key(self, memory_cache):
        await memory_cache.set(52.37, 4.89, 500, "transit", _transit())

        assert await memory_cache.get(52.37, 4.89, 1000, "transit", model=TransitAnalysis) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_disabled_cache_always_misses(self):
        cache = LocationCache(DisabledCacheBackend())
        await cache.set(52.37, 4.89, 500, "transit", _transit())

        assert cache.enabled is False
        assert await cache.get(52.37, 4.89, 500, "transit") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_default_backend_is_disabled(self):
        cache = LocationCache()
        assert cache.enabled is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_backend_failures_are_misses(self):
        """Read and write errors never reach the caller."""
        cache = LocationCache(BrokenBackend())

        await cache.set(52.37, 4.89, 500, "transit", _transit())
        assert await cache.get(52.37, 4.89, 500, "transit") is None
        assert await cache.get_hashed("ai", "anything") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_entry_is_a_miss(self, memory_cache):
        key = build_location_key(52.37, 4.89, 500, "transit")
        await memory_cache.backend.set_raw(key, json.dumps({"score": "not a number"}), 60)

        assert await memory_cache.get(52.37, 4.89, 500, "transit", model=TransitAnalysis) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unreadable_json_is_a_miss(self, memory_cache):
        key = build_location_key(52.37, 4.89, 500, "openmap")
        await memory_cache.backend.set_raw(key, "{not json", 60)

        assert await memory_cache.get(52.37, 4.89, 500, "openmap") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_hashed_round_trip(self, memory_cache):
        await memory_cache.set_hashed("ai", "smoothiebar::r523700::r48900", "Promising location.")

        assert await memory_cache.get_hashed("ai", "smoothiebar::r523700::r48900") == "Promising location."

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_hash_collision_is_a_miss(self, memory_cache):
        """An entry stored for another canonical input under the same key is ignored."""
        key = build_hashed_key("ai", "concept-a")
        envelope = {"canonical": "concept-b", "value": "wrong answer"}
        await memory_cache.backend.set_raw(key, json.dumps(envelope), 60)

        assert await memory_cache.get_hashed("ai", "concept-a") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_hashed_model_validation(self, memory_cache):
        await memory_cache.set_hashed("transit-test", "canonical", _transit())

        hit = await memory_cache.get_hashed("transit-test", "canonical", model=TransitAnalysis)
        assert hit == _transit()


# =============================================================================
# In-memory backend
# =============================================================================


class TestInMemoryBackend:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_expired_entry_is_removed(self):
        backend = InMemoryCacheBackend()
        await backend.set_raw("k", "v", ttl=-1)

        assert await backend.get_raw("k") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_evicts_oldest_at_capacity(self):
        backend = InMemoryCacheBackend(max_size=2)
        await backend.set_raw("a", "1", 60)
        await backend.set_raw("b", "2", 60)
        await backend.set_raw("c", "3", 60)

        assert await backend.get_raw("a") is None
        assert await backend.get_raw("b") == "2"
        assert await backend.get_raw("c") == "3"


# =============================================================================
# Upstash backend
# =============================================================================


class TestUpstashBackend:
    """Tests for the Upstash REST backend against a mock transport."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_set_then_get(self, mock_http):
        store = {}
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            command = json.loads(request.content)
            if command[0] == "SET":
                store[command[1]] = command[2]
                return httpx.Response(200, json={"result": "OK"})
            return httpx.Response(200, json={"result": store.get(command[1])})

        client = mock_http(handler)
        cache = LocationCache(UpstashCacheBackend("https://db.upstash.io/", "secret", http_client=client))

        await cache.set(52.37, 4.89, 500, "transit", _transit())
        hit = await cache.get(52.37, 4.89, 500, "transit", model=TransitAnalysis)

        assert hit == _transit()
        assert seen[0].headers["Authorization"] == "Bearer secret"
        assert seen[0].url.host == "db.upstash.io"
        set_command = json.loads(seen[0].content)
        assert set_command[3:] == ["EX", str(90 * 24 * 60 * 60)]
        await client.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_miss_returns_none(self, mock_http):
        client = mock_http(lambda request: httpx.Response(200, json={"result": None}))
        cache = LocationCache(UpstashCacheBackend("https://db.upstash.io", "secret", http_client=client))

        assert await cache.get(52.37, 4.89, 500, "openmap") is None
        await client.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_server_error_fails_open(self, mock_http):
        client = mock_http(lambda request: httpx.Response(503, text="unavailable"))
        cache = LocationCache(UpstashCacheBackend("https://db.upstash.io", "secret", http_client=client))

        await cache.set(52.37, 4.89, 500, "openmap", {"a": 1})
        assert await cache.get(52.37, 4.89, 500, "openmap") is None
        await client.aclose()


# =============================================================================
# Factory
# =============================================================================


class TestBuildCache:

    @pytest.mark.unit
    def test_auto_without_credentials_is_disabled(self, clean_env):
        cache = build_cache(Settings(_env_file=None))
        assert isinstance(cache.backend, DisabledCacheBackend)

    @pytest.mark.unit
    def test_auto_with_credentials_is_upstash(self, clean_env, monkeypatch):
        monkeypatch.setenv("UPSTASH_REDIS_REST_URL", "https://db.upstash.io")
        monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "secret")

        cache = build_cache(Settings(_env_file=None))
        assert isinstance(cache.backend, UpstashCacheBackend)

    @pytest.mark.unit
    def test_memory_backend(self, clean_env, monkeypatch):
        monkeypatch.setenv("CACHE_BACKEND", "memory")

        cache = build_cache(Settings(_env_file=None))
        assert isinstance(cache.backend, InMemoryCacheBackend)
        assert cache.enabled is True

    @pytest.mark.unit
    def test_none_backend_ignores_credentials(self, clean_env, monkeypatch):
        monkeypatch.setenv("CACHE_BACKEND", "none")
        monkeypatch.setenv("UPSTASH_REDIS_REST_URL", "https://db.upstash.io")
        monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "secret")

        cache = build_cache(Settings(_env_file=None))
        assert cache.enabled is False

"""
Fail-open cache for provider results and AI output.

Provides:
- Location-bucketed keys (lat/lng rounded to 4 decimals, ~11 m) per source
- A fixed TTL table per source
- Hashed keys for inputs that are not a location (classifier, insight text)
- Three interchangeable backends: Upstash REST, in-process memory, disabled

Every read or write failure degrades to a miss or a no-op. Callers never
branch on whether a cache is configured.
"""
import asyncio
import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from location_intel.core.config import Settings
from location_intel.core.http_client import BaseAPIClient

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

DAY = 24 * 60 * 60

SOURCE_TTLS: Dict[str, int] = {
    "demographics": 365 * DAY,
    "building": 30 * DAY,
    "transit": 90 * DAY,
    "openmap": 7 * DAY,
    "commercial": DAY,
    "ai": DAY,
    "ai-classify": 7 * DAY,
    "full-analysis": DAY,
}

KEY_PREFIX = "buurt"


def stable_hash(canonical: str) -> str:
    """
    Deterministic house hash for cache keys.

    First 16 hex chars of MD5 over the UTF-8 canonical string. Not used
    for security; identical across runs and platforms. Collisions are
    possible, so hashed entries also store the canonical string.
    """
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()[:16]


def build_location_key(
    lat: float,
    lng: float,
    radius: int,
    source: str,
) -> str:
    """
    Build the cache key for a point, radius and source.

    Example: buurt:52.3702:4.8952:transit:500
    """
    return f"{KEY_PREFIX}:{lat:.4f}:{lng:.4f}:{source}:{radius}"


def build_hashed_key(source: str, canonical: str) -> str:
    return f"{KEY_PREFIX}:{source}:{stable_hash(canonical)}"


# =============================================================================
# BACKENDS
# =============================================================================


class CacheBackend(ABC):
    """Raw string key/value store with expiry."""

    name: str = "abstract"

    @property
    def enabled(self) -> bool:
        return True

    @abstractmethod
    async def get_raw(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set_raw(self, key: str, value: str, ttl: int) -> None:
        ...

    async def close(self) -> None:
        return None


class DisabledCacheBackend(CacheBackend):
    """Used when no cache is configured: always a miss, writes are dropped."""

    name = "disabled"

    @property
    def enabled(self) -> bool:
        return False

    async def get_raw(self, key: str) -> Optional[str]:
        return None

    async def set_raw(self, key: str, value: str, ttl: int) -> None:
        return None


@dataclass
class CacheEntry:
    """A single cache entry with value and metadata."""
    value: str
    created_at: float
    ttl: float  # Time-to-live in seconds

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl

    @property
    def is_expired(self) -> bool:
        return time.time() > self.expires_at


class InMemoryCacheBackend(CacheBackend):
    """
    Process-local cache with TTL support.

    Safe for concurrent coroutines. Expired entries are cleaned up
    periodically and the oldest entry is evicted once max_size is hit.
    """

    name = "memory"

    def __init__(self, max_size: int = 2000, cleanup_interval: float = 300):
        """
        Initialize the cache.

        Args:
            max_size: Maximum number of entries
            cleanup_interval: How often to clean expired entries (seconds)
        """
        self.max_size = max_size
        self.cleanup_interval = cleanup_interval

        self._cache: Dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._last_cleanup = time.time()

    async def get_raw(self, key: str) -> Optional[str]:
        async with self._lock:
            self._maybe_cleanup()

            entry = self._cache.get(key)
            if entry is None:
                return None

            if entry.is_expired:
                del self._cache[key]
                return None

            return entry.value

    async def set_raw(self, key: str, value: str, ttl: int) -> None:
        async with self._lock:
            self._maybe_cleanup()

            if len(self._cache) >= self.max_size and key not in self._cache:
                self._evict_oldest()

            self._cache[key] = CacheEntry(value=value, created_at=time.time(), ttl=ttl)

    def _maybe_cleanup(self) -> None:
        now = time.time()
        if now - self._last_cleanup < self.cleanup_interval:
            return

        self._last_cleanup = now
        expired_keys = [key for key, entry in self._cache.items() if entry.is_expired]
        for key in expired_keys:
            del self._cache[key]

        if expired_keys:
            logger.debug(f"Cache cleanup: removed {len(expired_keys)} expired entries")

    def _evict_oldest(self) -> None:
        if not self._cache:
            return
        oldest_key = min(self._cache.keys(), key=lambda k: self._cache[k].created_at)
        del self._cache[oldest_key]


class UpstashCacheBackend(BaseAPIClient, CacheBackend):
    """
    Upstash Redis over its REST interface.

    Each command is a JSON array POSTed to the database URL, e.g.
    ["SET", key, value, "EX", ttl]; the answer is {"result": ...}.
    """

    SOURCE_NAME = "upstash"
    DEFAULT_TIMEOUT = 2.0
    DEFAULT_CONNECT_TIMEOUT = 2.0
    name = "upstash"

    def __init__(
        self,
        url: str,
        token: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(
            api_key=token,
            max_concurrency=8,
            timeout=self.DEFAULT_TIMEOUT,
            connect_timeout=self.DEFAULT_CONNECT_TIMEOUT,
            http_client=http_client,
        )
        self.BASE_URL = url.rstrip("/")

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def get_raw(self, key: str) -> Optional[str]:
        data = await self.post(self.BASE_URL, json_body=["GET", key], resource_id=key)
        result = data.get("result") if isinstance(data, dict) else None
        if result is None:
            return None
        if not isinstance(result, str):
            result = json.dumps(result)
        return result

    async def set_raw(self, key: str, value: str, ttl: int) -> None:
        await self.post(
            self.BASE_URL,
            json_body=["SET", key, value, "EX", str(ttl)],
            resource_id=key,
        )


# =============================================================================
# FACADE
# =============================================================================


class LocationCache:
    """
    Typed, fail-open facade over a cache backend.

    Usage:
        cache = LocationCache(InMemoryCacheBackend())
        await cache.set(52.37, 4.89, 500, "transit", analysis)
        hit = await cache.get(52.37, 4.89, 500, "transit", model=TransitAnalysis)
    """

    def __init__(self, backend: Optional[CacheBackend] = None):
        self.backend = backend or DisabledCacheBackend()

    @property
    def enabled(self) -> bool:
        return self.backend.enabled

    async def get(
        self,
        lat: float,
        lng: float,
        radius: int,
        source: str,
        model: Optional[Type[M]] = None,
    ) -> Any:
        """
        Read a cached value for a location and source.

        Args:
            lat, lng: Point coordinates
            radius: Radius in meters
            source: Source tag from SOURCE_TTLS
            model: Pydantic model to validate the cached JSON into

        Returns:
            Cached value (model instance when model is given) or None on miss
        """
        key = build_location_key(lat, lng, radius, source)
        return await self._read(key, model)

    async def set(
        self,
        lat: float,
        lng: float,
        radius: int,
        source: str,
        value: Any,
    ) -> None:
        """Write a value for a location and source with the source's TTL."""
        key = build_location_key(lat, lng, radius, source)
        await self._write(key, value, SOURCE_TTLS.get(source, DAY))

    async def get_hashed(
        self,
        source: str,
        canonical: str,
        model: Optional[Type[M]] = None,
    ) -> Any:
        """
        Read a value stored under a hash of a canonical input string.

        An entry whose stored canonical string differs from the requested
        one is a hash collision and is treated as a miss.
        """
        key = build_hashed_key(source, canonical)
        envelope = await self._read(key, None)
        if not isinstance(envelope, dict):
            return None
        if envelope.get("canonical") != canonical:
            if "canonical" in envelope:
                logger.warning(f"[cache] Hash collision on {key}, ignoring entry")
            return None
        value = envelope.get("value")
        if model is None or value is None:
            return value
        try:
            return model.model_validate(value)
        except PydanticValidationError as e:
            logger.warning(f"[cache] Discarding invalid entry {key}: {e}")
            return None

    async def set_hashed(self, source: str, canonical: str, value: Any) -> None:
        key = build_hashed_key(source, canonical)
        envelope = {"canonical": canonical, "value": _to_jsonable(value)}
        await self._write(key, envelope, SOURCE_TTLS.get(source, DAY))

    async def close(self) -> None:
        try:
            await self.backend.close()
        except Exception as e:
            logger.debug(f"[cache] Close failed: {e}")

    async def _read(self, key: str, model: Optional[Type[M]]) -> Any:
        if not self.backend.enabled:
            return None
        try:
            raw = await self.backend.get_raw(key)
        except Exception as e:
            logger.warning(f"[cache] Read failed for {key}: {e}")
            return None
        if raw is None:
            logger.debug(f"[cache] Miss {key}")
            return None

        try:
            data = json.loads(raw)
            if model is not None:
                return model.model_validate(data)
            return data
        except (ValueError, PydanticValidationError) as e:
            logger.warning(f"[cache] Discarding unreadable entry {key}: {e}")
            return None

    async def _write(self, key: str, value: Any, ttl: int) -> None:
        if not self.backend.enabled:
            return
        try:
            payload = json.dumps(_to_jsonable(value))
        except (TypeError, ValueError) as e:
            logger.warning(f"[cache] Value for {key} is not serializable: {e}")
            return
        try:
            await self.backend.set_raw(key, payload, ttl)
            logger.debug(f"[cache] Stored {key} (ttl={ttl}s)")
        except Exception as e:
            logger.warning(f"[cache] Write failed for {key}: {e}")


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def build_cache(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
) -> LocationCache:
    """
    Create the cache selected by settings.

    auto   -> Upstash when URL and token are set, otherwise disabled
    memory -> in-process cache
    none   -> disabled
    """
    backend: CacheBackend
    if settings.cache_backend == "memory":
        backend = InMemoryCacheBackend()
    elif settings.cache_backend == "auto" and settings.is_cache_configured():
        backend = UpstashCacheBackend(
            url=settings.upstash_redis_rest_url,
            token=settings.upstash_redis_rest_token,
            http_client=http_client,
        )
    else:
        backend = DisabledCacheBackend()

    logger.info(f"Cache backend: {backend.name}")
    return LocationCache(backend)

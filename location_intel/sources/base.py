"""
Base class for location data providers.

A provider answers fetch(lat, lng, radius) with a model or None. It reads
its own cache slot first, then calls its upstream sources once, and
swallows every upstream failure into None so the analyzer can treat a
missing source uniformly. Task cancellation is never swallowed.
"""
import logging
from abc import abstractmethod
from typing import Generic, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel

from location_intel.core.cache import LocationCache
from location_intel.core.http_client import BaseAPIClient

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class BaseProvider(BaseAPIClient, Generic[T]):
    """
    Cache-first, never-raising provider.

    Subclasses set:
    - SOURCE_NAME: log tag
    - CACHE_SOURCE: key in the cache TTL table
    - RESULT_MODEL: pydantic model stored in the cache
    and implement _fetch_uncached().
    """

    CACHE_SOURCE: str = ""
    RESULT_MODEL: Type[BaseModel] = BaseModel
    # Point-only data (area statistics, the building) is cached regardless of radius
    CACHE_BY_RADIUS: bool = True

    def __init__(
        self,
        cache: Optional[LocationCache] = None,
        api_key: Optional[str] = None,
        timeout: float = BaseAPIClient.DEFAULT_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(api_key=api_key, timeout=timeout, http_client=http_client)
        self.cache = cache or LocationCache()

    async def fetch(self, lat: float, lng: float, radius: int) -> Optional[T]:
        """
        Fetch data for a point, from cache when possible.

        Args:
            lat: Latitude (WGS84)
            lng: Longitude (WGS84)
            radius: Search radius in meters

        Returns:
            Result model, or None when the source is unavailable or has no data
        """
        if not self.is_configured:
            return None

        cache_radius = radius if self.CACHE_BY_RADIUS else 0
        cached = await self.cache.get(lat, lng, cache_radius, self.CACHE_SOURCE, model=self.RESULT_MODEL)
        if cached is not None:
            logger.debug(f"[{self.SOURCE_NAME}] Cache hit")
            return cached

        try:
            result = await self._fetch_uncached(lat, lng, radius)
        except Exception as e:
            logger.warning(f"[{self.SOURCE_NAME}] Unavailable: {e}")
            return None

        if result is None:
            logger.info(f"[{self.SOURCE_NAME}] No data for ({lat:.4f}, {lng:.4f})")
            return None

        await self.cache.set(lat, lng, cache_radius, self.CACHE_SOURCE, result)
        return result

    @abstractmethod
    async def _fetch_uncached(self, lat: float, lng: float, radius: int) -> Optional[T]:
        """Query upstream sources. May raise; fetch() turns errors into None."""
        ...

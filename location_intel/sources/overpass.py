"""
OpenStreetMap Overpass API access shared by the open-map and transit providers.

Overpass Documentation:
https://wiki.openstreetmap.org/wiki/Overpass_API
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from location_intel.core.api_errors import MalformedResponseError
from location_intel.core.cache import LocationCache
from location_intel.sources.base import BaseProvider, T

logger = logging.getLogger(__name__)

DEFAULT_OVERPASS_URL = "https://overpass-api.de/api/interpreter"


def around(radius: float, lat: float, lng: float) -> str:
    """Overpass 'around' filter, e.g. (around:500,52.37,4.89)."""
    return f"(around:{int(round(radius))},{lat},{lng})"


def element_position(element: Dict[str, Any], lat: float, lng: float) -> tuple:
    """Coordinates of a node, or the center of a way, falling back to the query point."""
    center = element.get("center") or {}
    el_lat = element.get("lat") or center.get("lat") or lat
    el_lng = element.get("lon") or center.get("lon") or lng
    return el_lat, el_lng


class OverpassProvider(BaseProvider[T]):
    """Provider whose primary upstream is an Overpass QL query."""

    def __init__(
        self,
        cache: Optional[LocationCache] = None,
        overpass_url: str = DEFAULT_OVERPASS_URL,
        timeout: float = 8.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(cache=cache, timeout=timeout, http_client=http_client)
        self.overpass_url = overpass_url

    async def _run_overpass(
        self,
        query: str,
        timeout: Optional[float] = None,
        resource_id: str = "overpass",
    ) -> List[Dict[str, Any]]:
        """
        POST an Overpass QL query and return its elements.

        Raises:
            APIError: On HTTP failure or a payload without an elements list
        """
        data = await self.post(
            self.overpass_url,
            form_data={"data": query},
            resource_id=resource_id,
            timeout=timeout,
        )
        elements = data.get("elements") if isinstance(data, dict) else None
        if not isinstance(elements, list):
            raise MalformedResponseError("Overpass response has no elements", source=self.SOURCE_NAME)
        return elements

"""
Building information from the BAG registry (via PDOK).

Two lookups run concurrently:
- Locatieserver reverse geocode (type=adres): reliable construction year
- BAG WFS bounding box: dwelling object (uses, floor area, status) and
  building footprint (construction year)

Each field takes the first source that populated it.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from location_intel.core.geo import rd_bbox
from location_intel.core.models import BuildingInfo
from location_intel.sources.base import BaseProvider
from location_intel.sources.demographics import LOCATIESERVER_REVERSE_URL

logger = logging.getLogger(__name__)

BAG_WFS_URL = "https://service.pdok.nl/lv/bag/wfs/v2_0"

# Uses (gebruiksdoelen) that permit hospitality
HOSPITALITY_USES = ["bijeenkomstfunctie", "logiesfunctie", "winkelfunctie"]

ACTIVE_STATUSES = {
    "Verblijfsobject in gebruik",
    "Verblijfsobject in gebruik (niet ingemeten)",
}

WFS_BBOX_HALF_SIZE = 30
PAND_TIMEOUT = 5.0


def is_hospitality_suitable(uses: List[str]) -> bool:
    return any(
        allowed in use.lower()
        for use in uses
        for allowed in HOSPITALITY_USES
    )


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, list):
        return [str(v) for v in value if v]
    return [str(value)]


def _as_number(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_year(value: Any) -> Optional[int]:
    number = _as_number(value)
    return int(number) if number else None


def merge_building_info(
    geocoded: Optional[Dict[str, Any]],
    spatial: Optional[Dict[str, Any]],
) -> Optional[BuildingInfo]:
    """
    Combine the geocode and spatial partial results.

    Construction year: geocode first, then spatial. Uses, floor area and
    status: spatial first, then geocode.
    """
    if not geocoded and not spatial:
        return None
    geocoded = geocoded or {}
    spatial = spatial or {}

    construction_year = geocoded.get("construction_year") or spatial.get("construction_year")
    uses = spatial.get("allowed_uses") or geocoded.get("allowed_uses") or []
    floor_area = spatial.get("floor_area")
    if floor_area is None:
        floor_area = geocoded.get("floor_area")
    status = spatial.get("status") or geocoded.get("status") or "unknown"

    return BuildingInfo(
        construction_year=construction_year,
        allowed_uses=uses,
        floor_area=floor_area,
        status=status,
        is_hospitality_suitable=is_hospitality_suitable(uses),
    )


class BuildingProvider(BaseProvider[BuildingInfo]):
    """BAG building data for the address at a point."""

    SOURCE_NAME = "bag"
    CACHE_SOURCE = "building"
    RESULT_MODEL = BuildingInfo
    CACHE_BY_RADIUS = False

    async def _fetch_uncached(self, lat: float, lng: float, radius: int) -> Optional[BuildingInfo]:
        geocoded, spatial = await asyncio.gather(
            self._fetch_geocoded(lat, lng),
            self._fetch_spatial(lat, lng),
            return_exceptions=True,
        )
        if isinstance(geocoded, Exception):
            logger.debug(f"[{self.SOURCE_NAME}] Reverse geocode failed: {geocoded}")
            geocoded = None
        if isinstance(spatial, Exception):
            logger.debug(f"[{self.SOURCE_NAME}] WFS lookup failed: {spatial}")
            spatial = None

        return merge_building_info(geocoded, spatial)

    async def _fetch_geocoded(self, lat: float, lng: float) -> Optional[Dict[str, Any]]:
        params = {
            "lat": lat,
            "lon": lng,
            "type": "adres",
            "rows": 1,
            "fl": "bouwjaar,gebruiksdoel,oppervlakte,adresseerbaarobject_id,weergavenaam",
        }
        data = await self.get(LOCATIESERVER_REVERSE_URL, params=params, resource_id="reverse-adres")
        docs = (data.get("response") or {}).get("docs") or []
        if not docs:
            return None
        doc = docs[0]
        return {
            "construction_year": _as_year(doc.get("bouwjaar")),
            "allowed_uses": _as_list(doc.get("gebruiksdoel")),
            "floor_area": _as_number(doc.get("oppervlakte")),
            "status": "in use",
        }

    async def _fetch_spatial(self, lat: float, lng: float) -> Optional[Dict[str, Any]]:
        bbox = rd_bbox(lat, lng, WFS_BBOX_HALF_SIZE)
        dwelling, building = await asyncio.gather(
            self._fetch_dwelling(bbox),
            self._fetch_pand(bbox),
            return_exceptions=True,
        )
        if isinstance(dwelling, Exception):
            logger.debug(f"[{self.SOURCE_NAME}] verblijfsobject lookup failed: {dwelling}")
            dwelling = None
        if isinstance(building, Exception):
            logger.debug(f"[{self.SOURCE_NAME}] pand lookup failed: {building}")
            building = None

        if not dwelling and not building:
            return None
        dwelling = dwelling or {}
        building = building or {}
        return {
            "construction_year": building.get("construction_year"),
            "allowed_uses": dwelling.get("allowed_uses") or [],
            "floor_area": dwelling.get("floor_area"),
            "status": dwelling.get("status") or building.get("status"),
        }

    def _wfs_params(self, type_name: str, bbox: str, count: int) -> Dict[str, str]:
        return {
            "service": "WFS",
            "version": "2.0.0",
            "request": "GetFeature",
            "typeName": type_name,
            "outputFormat": "application/json",
            "bbox": bbox,
            "count": str(count),
        }

    async def _fetch_dwelling(self, bbox: str) -> Optional[Dict[str, Any]]:
        data = await self.get(
            BAG_WFS_URL,
            params=self._wfs_params("bag:verblijfsobject", bbox, 5),
            resource_id="verblijfsobject",
        )
        features = data.get("features") or []
        if not features:
            return None

        feature = next(
            (f for f in features if (f.get("properties") or {}).get("status") in ACTIVE_STATUSES),
            features[0],
        )
        props = feature.get("properties") or {}
        return {
            "allowed_uses": _as_list(props.get("gebruiksdoel")),
            "floor_area": _as_number(props.get("oppervlakte")),
            "status": props.get("status") or None,
        }

    async def _fetch_pand(self, bbox: str) -> Optional[Dict[str, Any]]:
        data = await self.get(
            BAG_WFS_URL,
            params=self._wfs_params("bag:pand", bbox, 1),
            resource_id="pand",
            timeout=min(PAND_TIMEOUT, self.timeout),
        )
        features = data.get("features") or []
        if not features or not features[0].get("properties"):
            return None
        props = features[0]["properties"]
        return {
            "construction_year": _as_year(props.get("bouwjaar")),
            "status": props.get("status") or None,
        }

"""
Public transport accessibility.

Primary: Overpass stop and station nodes (always available, no key).
Optional: Google Places transit stations, merged in when not already present.

Scoring per stop, summed and capped at 10:
- train  <= 1000 m: +3,   <= 2000 m: +1.5
- metro  <=  800 m: +2,   <= 1500 m: +1
- tram   <=  500 m: +1.5, <= 1000 m: +0.5
- bus    <=  400 m: +0.5
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from location_intel.core.cache import LocationCache
from location_intel.core.geo import distance_meters
from location_intel.core.models import TransitAnalysis, TransitStop
from location_intel.core.name_matching import merge_stops
from location_intel.sources.overpass import DEFAULT_OVERPASS_URL, OverpassProvider, around
from location_intel.sources.places import PlacesProvider

logger = logging.getLogger(__name__)

# (mode, distance limit, points), first matching limit wins
SCORE_TABLE = {
    "train": [(1000, 3.0), (2000, 1.5)],
    "metro": [(800, 2.0), (1500, 1.0)],
    "tram": [(500, 1.5), (1000, 0.5)],
    "bus": [(400, 0.5)],
}

LABEL_THRESHOLDS = [
    (8, "excellent"),
    (6, "good"),
    (4, "fair"),
    (2, "poor"),
]

DEFAULT_STOP_NAMES = {
    "bus": "Bus stop",
    "tram": "Tram stop",
    "metro": "Station",
    "train": "Station",
}


def score_stops(stops: List[TransitStop]) -> float:
    """Sum per-stop points, rounded to one decimal and capped at 10."""
    score = 0.0
    for stop in stops:
        for limit, points in SCORE_TABLE.get(stop.mode, []):
            if stop.distance_meters <= limit:
                score += points
                break
    return min(10.0, round(score * 10) / 10)


def score_to_label(score: float) -> str:
    for threshold, label in LABEL_THRESHOLDS:
        if score >= threshold:
            return label
    return "bad"


def transit_mode_for_tags(tags: Dict[str, Any]) -> str:
    if tags.get("railway") in ("station", "halt"):
        return "train"
    if tags.get("station") == "subway" or tags.get("subway") == "yes":
        return "metro"
    if tags.get("railway") == "tram_stop" or tags.get("tram") == "yes":
        return "tram"
    return "bus"


def build_stops_query(lat: float, lng: float, radius: int, timeout: int = 8) -> str:
    """Stops within radius; rail stations at 2x and subway at 1.5x since they are sparser."""
    return f"""
    [out:json][timeout:{timeout}];
    (
      node["public_transport"="stop_position"]{around(radius, lat, lng)};
      node["railway"="tram_stop"]{around(radius, lat, lng)};
      node["railway"="station"]{around(radius * 2, lat, lng)};
      node["station"="subway"]{around(radius * 1.5, lat, lng)};
    );
    out body;
    """


def parse_stop(element: Dict[str, Any], lat: float, lng: float) -> TransitStop:
    tags = element.get("tags") or {}
    mode = transit_mode_for_tags(tags)
    route_ref = tags.get("route_ref")
    lines = [line.strip() for line in route_ref.split(";") if line.strip()] if route_ref else None
    return TransitStop(
        name=tags.get("name") or DEFAULT_STOP_NAMES[mode],
        mode=mode,
        distance_meters=distance_meters(
            lat, lng, element.get("lat") or lat, element.get("lon") or lng
        ),
        lines=lines or None,
    )


class TransitProvider(OverpassProvider[TransitAnalysis]):
    """Transit stops around a point with an accessibility score."""

    SOURCE_NAME = "transit"
    CACHE_SOURCE = "transit"
    RESULT_MODEL = TransitAnalysis

    def __init__(
        self,
        cache: Optional[LocationCache] = None,
        places: Optional[PlacesProvider] = None,
        overpass_url: str = DEFAULT_OVERPASS_URL,
        timeout: float = 8.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(cache=cache, overpass_url=overpass_url, timeout=timeout, http_client=http_client)
        self.places = places

    async def _fetch_uncached(self, lat: float, lng: float, radius: int) -> Optional[TransitAnalysis]:
        osm_result, google_stops = await asyncio.gather(
            self._fetch_osm_stops(lat, lng, radius),
            self._fetch_commercial_stops(lat, lng, radius),
            return_exceptions=True,
        )

        if isinstance(osm_result, Exception):
            logger.warning(f"[{self.SOURCE_NAME}] Overpass stops unavailable: {osm_result}")
            osm_result = None
        if isinstance(google_stops, Exception):
            google_stops = None

        # Both sources down is "no data", not "no transit"
        if osm_result is None and google_stops is None:
            return None

        stops = merge_stops(osm_result or [], google_stops or [])
        score = score_stops(stops)
        logger.info(f"[{self.SOURCE_NAME}] {len(stops)} stops, score {score}")
        return TransitAnalysis(stops=stops, score=score, accessibility_label=score_to_label(score))

    async def _fetch_osm_stops(self, lat: float, lng: float, radius: int) -> List[TransitStop]:
        query = build_stops_query(lat, lng, radius, timeout=int(self.timeout))
        elements = await self._run_overpass(query, resource_id="stops")
        return [parse_stop(el, lat, lng) for el in elements]

    async def _fetch_commercial_stops(self, lat: float, lng: float, radius: int) -> Optional[List[TransitStop]]:
        if self.places is None:
            return None
        return await self.places.search_transit(lat, lng, radius)

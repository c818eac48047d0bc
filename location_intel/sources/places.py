"""
Google Places API (v1) client.

Optional: every method returns None when GOOGLE_PLACES_API_KEY is not set.

Provides:
- Nearby search over hospitality categories (cached 24 h)
- Free-text search for a concept (not cached, used by the viability check)
- Nearby search over transit station types (used by the transit provider)
- Place details: up to 5 reviews plus the editorial summary

API Documentation:
https://developers.google.com/maps/documentation/places/web-service/op-overview
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from location_intel.core.cache import LocationCache
from location_intel.core.geo import distance_meters
from location_intel.core.models import (
    CompetitorInfo,
    OpeningHours,
    PlaceDetails,
    PlaceReview,
    TransitStop,
)
from location_intel.sources.base import BaseProvider

logger = logging.getLogger(__name__)

PLACES_BASE_URL = "https://places.googleapis.com/v1"

HOSPITALITY_TYPES = [
    "restaurant",
    "cafe",
    "bar",
    "meal_delivery",
    "meal_takeaway",
    "bakery",
    "ice_cream_shop",
]

TRANSIT_TYPES = [
    "train_station",
    "transit_station",
    "subway_station",
    "light_rail_station",
    "bus_station",
]

PLACE_FIELDS = [
    "places.name",
    "places.displayName",
    "places.types",
    "places.rating",
    "places.userRatingCount",
    "places.location",
    "places.priceLevel",
    "places.businessStatus",
    "places.regularOpeningHours",
]

PRICE_LEVELS = {
    "PRICE_LEVEL_FREE": 0,
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}

CLOSED_PERMANENTLY = "CLOSED_PERMANENTLY"

NEARBY_MAX_RESULTS = 20
TEXT_SEARCH_MAX_RESULTS = 10
TRANSIT_MAX_RESULTS = 10
MAX_REVIEWS = 5

# Text search only biases towards the circle, so results are trimmed here
TEXT_SEARCH_RADIUS_FACTOR = 1.5


class NearbyPlacesResult(BaseModel):
    """Cached unit for the nearby search."""
    competitors: List[CompetitorInfo] = Field(default_factory=list)


def _circle(lat: float, lng: float, radius: float) -> Dict[str, Any]:
    return {
        "circle": {
            "center": {"latitude": lat, "longitude": lng},
            "radius": float(radius),
        }
    }


def parse_place(place: Dict[str, Any], lat: float, lng: float) -> Optional[CompetitorInfo]:
    """
    Convert one Places API place into a CompetitorInfo.

    Returns None for permanently closed venues.
    """
    status = place.get("businessStatus")
    if status == CLOSED_PERMANENTLY:
        return None

    location = place.get("location") or {}
    place_lat = location.get("latitude", lat)
    place_lng = location.get("longitude", lng)

    hours = (place.get("regularOpeningHours") or {}).get("weekdayDescriptions")
    types = place.get("types") or []

    return CompetitorInfo(
        name=(place.get("displayName") or {}).get("text") or "Unknown",
        type=types[0] if types else "restaurant",
        distance_meters=distance_meters(lat, lng, place_lat, place_lng),
        rating=place.get("rating"),
        review_count=place.get("userRatingCount"),
        price_level=PRICE_LEVELS.get(place.get("priceLevel")),
        business_status=status,
        opening_hours=OpeningHours(weekday_descriptions=hours) if hours else None,
        source="commercial",
        place_ref=place.get("name"),
    )


def transit_mode_for_types(types: List[str]) -> str:
    if "train_station" in types:
        return "train"
    if "subway_station" in types:
        return "metro"
    if "light_rail_station" in types:
        return "tram"
    return "bus"


class PlacesProvider(BaseProvider[NearbyPlacesResult]):
    """Commercial places data; every call is a no-op without an API key."""

    SOURCE_NAME = "google"
    CACHE_SOURCE = "commercial"
    RESULT_MODEL = NearbyPlacesResult
    BASE_URL = PLACES_BASE_URL

    def __init__(
        self,
        api_key: Optional[str] = None,
        cache: Optional[LocationCache] = None,
        timeout: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(cache=cache, api_key=api_key, timeout=timeout, http_client=http_client)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        headers["X-Goog-Api-Key"] = self.api_key or ""
        return headers

    async def nearby_competitors(self, lat: float, lng: float, radius: int) -> Optional[List[CompetitorInfo]]:
        """
        Hospitality venues within radius, nearest first.

        Returns:
            List of competitors, or None when unconfigured or unavailable
        """
        result = await self.fetch(lat, lng, radius)
        return result.competitors if result is not None else None

    async def _fetch_uncached(self, lat: float, lng: float, radius: int) -> Optional[NearbyPlacesResult]:
        body = {
            "includedTypes": HOSPITALITY_TYPES,
            "maxResultCount": NEARBY_MAX_RESULTS,
            "locationRestriction": _circle(lat, lng, radius),
        }
        data = await self.post(
            "places:searchNearby",
            json_body=body,
            resource_id="searchNearby",
            extra_headers={"X-Goog-FieldMask": ",".join(PLACE_FIELDS)},
        )
        competitors = [
            c for c in (parse_place(p, lat, lng) for p in data.get("places") or []) if c
        ]
        competitors.sort(key=lambda c: c.distance_meters)
        logger.info(f"[{self.SOURCE_NAME}] {len(competitors)} venues within {radius}m")
        return NearbyPlacesResult(competitors=competitors)

    async def search_concept(
        self,
        concept: str,
        lat: float,
        lng: float,
        radius: int,
    ) -> Optional[List[CompetitorInfo]]:
        """
        Free-text search for a concept around a point.

        More precise than category matching ("smoothiebar" finds juice bars
        typed as cafe). Results farther than 1.5x radius are dropped.

        Returns:
            Competitors nearest first, or None when unconfigured or unavailable
        """
        if not self.is_configured:
            return None

        body = {
            "textQuery": concept,
            "locationBias": _circle(lat, lng, radius),
            "maxResultCount": TEXT_SEARCH_MAX_RESULTS,
        }
        try:
            data = await self.post(
                "places:searchText",
                json_body=body,
                resource_id=f"searchText:{concept}",
                extra_headers={
                    "X-Goog-FieldMask": ",".join(PLACE_FIELDS + ["places.editorialSummary"])
                },
            )
            competitors = []
            for place in data.get("places") or []:
                competitor = parse_place(place, lat, lng)
                if competitor and competitor.distance_meters <= radius * TEXT_SEARCH_RADIUS_FACTOR:
                    competitors.append(competitor)
        except Exception as e:
            logger.warning(f"[{self.SOURCE_NAME}] Text search failed for '{concept}': {e}")
            return None

        competitors.sort(key=lambda c: c.distance_meters)
        return competitors

    async def search_transit(self, lat: float, lng: float, radius: int) -> Optional[List[TransitStop]]:
        """Transit stations within 2x radius, or None when unconfigured or unavailable."""
        if not self.is_configured:
            return None

        body = {
            "includedTypes": TRANSIT_TYPES,
            "maxResultCount": TRANSIT_MAX_RESULTS,
            "locationRestriction": _circle(lat, lng, radius * 2),
        }
        try:
            data = await self.post(
                "places:searchNearby",
                json_body=body,
                resource_id="searchNearby:transit",
                extra_headers={"X-Goog-FieldMask": "places.displayName,places.types,places.location"},
            )
            stops = []
            for place in data.get("places") or []:
                location = place.get("location") or {}
                stops.append(
                    TransitStop(
                        name=(place.get("displayName") or {}).get("text") or "Station",
                        mode=transit_mode_for_types(place.get("types") or []),
                        distance_meters=distance_meters(
                            lat, lng, location.get("latitude", lat), location.get("longitude", lng)
                        ),
                    )
                )
        except Exception as e:
            logger.warning(f"[{self.SOURCE_NAME}] Transit search failed: {e}")
            return None

        return stops

    async def get_details(self, place_ref: str) -> Optional[PlaceDetails]:
        """
        Reviews and editorial summary for one place.

        Args:
            place_ref: Resource name such as "places/ChIJ..."

        Returns:
            Up to 5 non-empty reviews plus summary, or None when unavailable
        """
        if not self.is_configured:
            return None

        try:
            data = await self.get(
                place_ref,
                resource_id=place_ref,
                extra_headers={"X-Goog-FieldMask": "reviews,editorialSummary"},
            )
            reviews = []
            for review in (data.get("reviews") or [])[:MAX_REVIEWS]:
                text = (review.get("text") or {}).get("text") or (
                    review.get("originalText") or {}
                ).get("text") or ""
                if text:
                    reviews.append(PlaceReview(text=text, rating=review.get("rating")))
            summary = (data.get("editorialSummary") or {}).get("text") or None
        except Exception as e:
            logger.warning(f"[{self.SOURCE_NAME}] Details failed for {place_ref}: {e}")
            return None

        return PlaceDetails(reviews=reviews, editorial_summary=summary)

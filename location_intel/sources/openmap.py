"""
Neighbourhood analysis from OpenStreetMap (via Overpass).

Free and always available, so this is the baseline every analysis starts
from: hospitality competitors and complementary venues, transport,
offices, shops, education and culture around the point, condensed into
area statistics, a buzz index and a short summary.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from location_intel.core.geo import distance_meters
from location_intel.core.mathutils import clamp, round_half_up
from location_intel.core.models import (
    AreaStats,
    BaseAnalysis,
    CompetitorInfo,
    NearbyPlace,
    OpenMapResult,
)
from location_intel.sources.overpass import OverpassProvider, around, element_position

logger = logging.getLogger(__name__)

COMPETITOR_AMENITIES = {"restaurant", "fast_food", "food_court", "bar", "pub", "biergarten"}
COMPLEMENTARY_AMENITIES = {"cafe", "ice_cream"}
EDUCATION_AMENITIES = {"university", "school", "college"}
CULTURE_LABELS = {"theatre": "Theatre", "cinema": "Cinema", "museum": "Museum"}

NO_DATA_SUMMARY = "No data available for this location."


def build_places_query(lat: float, lng: float, radius: int, timeout: int = 10) -> str:
    """Overpass query for everything the neighbourhood analysis looks at."""
    return f"""
    [out:json][timeout:{timeout}];
    (
      node["amenity"~"restaurant|cafe|bar|pub|fast_food|ice_cream|biergarten|food_court"]{around(radius, lat, lng)};
      node["public_transport"="stop_position"]{around(radius, lat, lng)};
      node["amenity"="parking"]{around(radius, lat, lng)};
      node["railway"="station"]{around(radius * 2, lat, lng)};
      node["office"]{around(radius, lat, lng)};
      way["office"]{around(radius, lat, lng)};
      node["shop"~"supermarket|convenience|mall"]{around(radius, lat, lng)};
      node["amenity"~"university|school|college"]{around(radius, lat, lng)};
      node["amenity"~"theatre|cinema|museum"]{around(radius, lat, lng)};
    );
    out center body;
    """


def categorize(tags: Optional[Dict[str, Any]]) -> Tuple[str, str]:
    """
    Map OSM tags to a place category and a display label for unnamed places.

    Returns:
        (category, label)
    """
    if not tags:
        return "retail", "Unknown"

    amenity = tags.get("amenity") or ""
    shop = tags.get("shop") or ""

    if amenity in ("restaurant", "fast_food", "food_court"):
        return "hospitality_competitor", "Restaurant"
    if amenity in ("bar", "pub", "biergarten"):
        return "hospitality_competitor", "Bar"
    if amenity in COMPLEMENTARY_AMENITIES:
        return "hospitality_complementary", "Café"

    if tags.get("public_transport") or tags.get("railway") == "station":
        return "transport", "Station" if tags.get("railway") == "station" else "Transit stop"
    if amenity == "parking":
        return "transport", "Parking"

    if tags.get("office"):
        return "office", "Office"

    if shop in ("supermarket", "convenience"):
        return "supermarket", "Supermarket"
    if shop == "mall":
        return "retail", "Shopping centre"

    if amenity in EDUCATION_AMENITIES:
        return "education", "Education"
    if amenity in CULTURE_LABELS:
        return "culture", CULTURE_LABELS[amenity]

    return "retail", "Amenity"


def parse_place(element: Dict[str, Any], lat: float, lng: float) -> NearbyPlace:
    tags = element.get("tags") or {}
    category, label = categorize(tags)
    el_lat, el_lng = element_position(element, lat, lng)
    place_type = (
        tags.get("amenity")
        or tags.get("shop")
        or tags.get("office")
        or tags.get("railway")
        or tags.get("public_transport")
        or "unknown"
    )
    return NearbyPlace(
        name=tags.get("name") or label,
        type=place_type,
        category=category,
        distance_meters=distance_meters(lat, lng, el_lat, el_lng),
        lat=el_lat,
        lng=el_lng,
    )


def analyze_places(places: List[NearbyPlace], radius: int) -> BaseAnalysis:
    """
    Condense nearby places into area statistics, buzz index and summary.

    Args:
        places: Categorized places around the point
        radius: Radius the places were searched in

    Returns:
        BaseAnalysis
    """
    competitors = [p for p in places if p.category == "hospitality_competitor"]
    complementary = [p for p in places if p.category == "hospitality_complementary"]
    transport = [p for p in places if p.category == "transport"]
    offices = [p for p in places if p.category == "office"]
    shops = [p for p in places if p.category in ("retail", "supermarket")]
    education = [p for p in places if p.category == "education"]
    culture = [p for p in places if p.category == "culture"]

    hospitality_count = len(competitors) + len(complementary)
    if hospitality_count > 15:
        density = "high"
    elif hospitality_count > 5:
        density = "medium"
    else:
        density = "low"

    stations = [t for t in transport if t.type == "station"]
    transport_score = min(
        10, round_half_up(len([t for t in transport if t.distance_meters < 300]) * 2 + len(stations) * 3)
    )
    amenities_score = min(
        10, round_half_up(len(shops) * 1.5 + len(education) * 2 + len(culture) * 1.5)
    )

    buzz = (
        (3 if hospitality_count > 10 else 2 if hospitality_count > 5 else 1)
        + (2 if transport_score > 5 else 1)
        + (2 if amenities_score > 5 else 1)
        + (2 if len(offices) > 3 else 1 if offices else 0)
    )
    buzz_index = int(clamp(buzz, 1, 10))

    stats = AreaStats(
        hospitality_count=hospitality_count,
        hospitality_density=density,
        transport_score=transport_score,
        amenities_score=amenities_score,
        offices_nearby=len(offices),
        competitor_radius=radius,
    )

    return BaseAnalysis(
        nearby_competitors=competitors,
        complementary=complementary,
        transport=transport,
        amenities=shops + education + culture,
        stats=stats,
        buzz_index=buzz_index,
        summary=_summarize(competitors, transport, stations, offices, radius, buzz_index),
    )


def _summarize(
    competitors: List[NearbyPlace],
    transport: List[NearbyPlace],
    stations: List[NearbyPlace],
    offices: List[NearbyPlace],
    radius: int,
    buzz_index: int,
) -> str:
    parts = []

    if buzz_index >= 7:
        parts.append("A lively location with a lot of hospitality activity.")
    elif buzz_index >= 4:
        parts.append("A location with average activity and room to grow.")
    else:
        parts.append("A quiet location, suited to destination hospitality.")

    count = len(competitors)
    if count > 10:
        parts.append(
            f"With {count} hospitality venues within {radius}m competition is strong; "
            f"a distinctive concept is essential."
        )
    elif count > 3:
        parts.append(f"{count} hospitality venues nearby give a good mix of competition and synergy.")
    else:
        parts.append(f"Only {count} competitors nearby, leaving room for a unique offer.")

    if stations:
        plural = "s" if len(stations) > 1 else ""
        parts.append(f"Train station{plural} within walking distance bring passers-by.")
    elif len(transport) > 3:
        parts.append("Well served by public transport (several stops nearby).")

    if len(offices) > 5:
        parts.append(f"{len(offices)} offices nearby bring lunch and business visitors.")

    return " ".join(parts)


def empty_analysis(radius: int) -> BaseAnalysis:
    """Base analysis used when the open map source is unavailable."""
    return BaseAnalysis(
        stats=AreaStats(competitor_radius=radius),
        buzz_index=1,
        summary=NO_DATA_SUMMARY,
    )


def to_competitors(places: List[NearbyPlace]) -> List[CompetitorInfo]:
    """Hospitality places as open-map competitors, nearest first."""
    competitors = [
        CompetitorInfo(
            name=p.name,
            type=p.type,
            distance_meters=p.distance_meters,
            source="openmap",
        )
        for p in places
        if p.category in ("hospitality_competitor", "hospitality_complementary")
    ]
    return sorted(competitors, key=lambda c: c.distance_meters)


class OpenMapProvider(OverpassProvider[OpenMapResult]):
    """Nearby places and the base neighbourhood analysis."""

    SOURCE_NAME = "osm"
    CACHE_SOURCE = "openmap"
    RESULT_MODEL = OpenMapResult

    async def _fetch_uncached(self, lat: float, lng: float, radius: int) -> Optional[OpenMapResult]:
        query = build_places_query(lat, lng, radius, timeout=int(max(self.timeout, 1)))
        elements = await self._run_overpass(query, resource_id="places")
        places = [parse_place(el, lat, lng) for el in elements]
        logger.info(f"[{self.SOURCE_NAME}] {len(places)} places within {radius}m")
        return OpenMapResult(places=places, analysis=analyze_places(places, radius))

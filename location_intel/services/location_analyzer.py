"""
Location analyzer.

Fans out to every provider at once, tolerates individual failures and
assembles one EnhancedLocationAnalysis which is cached for 24 hours.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from location_intel.core.cache import LocationCache
from location_intel.core.models import (
    Demographics,
    EnhancedLocationAnalysis,
    FootTrafficEstimate,
    TransitAnalysis,
)
from location_intel.core.name_matching import merge_competitors
from location_intel.sources.building import BuildingProvider
from location_intel.sources.demographics import DemographicsProvider
from location_intel.sources.foot_traffic import estimate_foot_traffic
from location_intel.sources.openmap import OpenMapProvider, empty_analysis, to_competitors
from location_intel.sources.places import PlacesProvider
from location_intel.sources.transit import TransitProvider

logger = logging.getLogger(__name__)

CACHE_SOURCE = "full-analysis"

# Thousands of EUR per inhabitant, approximate
NATIONAL_AVERAGE_INCOME = 28
PREMIUM_INCOME_FACTOR = 1.2
BUDGET_INCOME_FACTOR = 0.8
YOUNG_SKEW_PCT = 35
BUSY_FOOT_TRAFFIC = 1000


def data_quality_for(source_count: int) -> str:
    if source_count >= 4:
        return "full"
    if source_count >= 2:
        return "partial"
    return "basic"


def build_summary(
    base_summary: str,
    demographics: Optional[Demographics],
    transit: Optional[TransitAnalysis],
    foot_traffic: Optional[FootTrafficEstimate],
) -> str:
    """Base summary plus one sentence per notable signal."""
    parts = [base_summary]

    if demographics:
        income = demographics.avg_income
        if income:
            if income > NATIONAL_AVERAGE_INCOME * PREMIUM_INCOME_FACTOR:
                parts.append(
                    f"Average income in {demographics.area_name} is above the national "
                    f"average, which suits premium concepts."
                )
            elif income < NATIONAL_AVERAGE_INCOME * BUDGET_INCOME_FACTOR:
                parts.append("Income levels are relatively low; focus on affordable concepts.")

        if demographics.age_distribution.young_pct > YOUNG_SKEW_PCT:
            parts.append("Many young residents nearby, potential for trendy concepts.")

    if transit and transit.accessibility_label == "excellent":
        parts.append("Excellent public transport access brings extra passers-by.")

    if foot_traffic and foot_traffic.daily_estimate > BUSY_FOOT_TRAFFIC:
        parts.append(f"An estimated {foot_traffic.daily_estimate:,} passers-by per day.")

    return " ".join(parts)


def _settled(name: str, result: Any) -> Any:
    """Value of a gathered call, None when it raised."""
    if isinstance(result, Exception):
        logger.warning(f"[analyzer] {name} failed: {result}")
        return None
    return result


class LocationAnalyzer:
    """
    Full location analysis across all providers.

    Usage:
        analyzer = LocationAnalyzer(cache, demographics, building, transit, openmap, places)
        analysis = await analyzer.analyze(52.3676, 4.9041, 500)
    """

    def __init__(
        self,
        cache: LocationCache,
        demographics: DemographicsProvider,
        building: BuildingProvider,
        transit: TransitProvider,
        openmap: OpenMapProvider,
        places: PlacesProvider,
    ):
        self.cache = cache
        self.demographics = demographics
        self.building = building
        self.transit = transit
        self.openmap = openmap
        self.places = places

    async def analyze(self, lat: float, lng: float, radius: int) -> EnhancedLocationAnalysis:
        """
        Analyze a point.

        Args:
            lat, lng: WGS84 coordinates
            radius: Search radius in meters

        Returns:
            EnhancedLocationAnalysis; missing sources are None, never an error.
            data_sources lists only sources that answered, so "openmap" is
            absent when the Overpass query failed.
        """
        cached = await self.cache.get(lat, lng, radius, CACHE_SOURCE, model=EnhancedLocationAnalysis)
        if cached is not None:
            logger.debug(f"[analyzer] Cache hit for {lat:.4f},{lng:.4f} r={radius}")
            return cached

        results = await asyncio.gather(
            self.demographics.fetch(lat, lng, radius),
            self.building.fetch(lat, lng, radius),
            self.transit.fetch(lat, lng, radius),
            self.openmap.fetch(lat, lng, radius),
            self.places.nearby_competitors(lat, lng, radius),
            return_exceptions=True,
        )
        demographics = _settled("demographics", results[0])
        building = _settled("building", results[1])
        transit = _settled("transit", results[2])
        openmap = _settled("openmap", results[3])
        commercial = _settled("commercial", results[4])

        base = openmap.analysis if openmap is not None else empty_analysis(radius)
        stats = base.stats
        if transit is not None:
            stats = stats.model_copy(update={"transport_score": transit.score})

        openmap_competitors = to_competitors(openmap.places) if openmap is not None else []
        competitors = merge_competitors(commercial or [], openmap_competitors)

        foot_traffic = estimate_foot_traffic(
            demographics,
            transit,
            hospitality_count=stats.hospitality_count,
            office_count=stats.offices_nearby,
            competitors=competitors,
        )

        data_sources: List[str] = []
        if openmap is not None:
            data_sources.append("openmap")
        if demographics is not None:
            data_sources.append("demographics")
        if building is not None:
            data_sources.append("building")
        if transit is not None:
            data_sources.append("transit")
        if commercial is not None:
            data_sources.append("commercial")

        analysis = EnhancedLocationAnalysis(
            nearby_competitors=base.nearby_competitors,
            complementary=base.complementary,
            transport=base.transport,
            amenities=base.amenities,
            stats=stats,
            buzz_index=base.buzz_index,
            summary=build_summary(base.summary, demographics, transit, foot_traffic),
            demographics=demographics,
            building=building,
            transit_analysis=transit,
            foot_traffic=foot_traffic,
            competitors=competitors,
            data_sources=data_sources,
            data_quality=data_quality_for(len(data_sources)),
            fetched_at=datetime.now(timezone.utc).isoformat(),
        )

        logger.info(
            f"[analyzer] {lat:.4f},{lng:.4f} r={radius}: sources {data_sources}, "
            f"{len(competitors)} competitors, quality {analysis.data_quality}"
        )

        await self.cache.set(lat, lng, radius, CACHE_SOURCE, analysis)
        return analysis

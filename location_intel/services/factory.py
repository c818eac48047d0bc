"""
Service wiring.

Builds the cache, provider clients, classifier and engines once and hands
them to the LocationIntelligence facade. Nothing here is a module-level
singleton; the application owns the facade and closes it on shutdown.
"""
import logging
from typing import List, Optional

import httpx

from location_intel.agentic.competitor_classifier import CompetitorClassifier
from location_intel.agentic.llm_client import LLMClient, build_llm_client
from location_intel.core.cache import LocationCache, build_cache
from location_intel.core.config import Settings, get_settings
from location_intel.core.http_client import BaseAPIClient
from location_intel.core.models import ConceptCheckResult, EnhancedLocationAnalysis
from location_intel.services.concept_viability import ConceptViabilityEngine
from location_intel.services.location_analyzer import LocationAnalyzer
from location_intel.sources.building import BuildingProvider
from location_intel.sources.demographics import DemographicsProvider
from location_intel.sources.openmap import OpenMapProvider
from location_intel.sources.places import PlacesProvider
from location_intel.sources.transit import TransitProvider

logger = logging.getLogger(__name__)


class LocationIntelligence:
    """
    Entry point for location analysis and concept viability checks.

    Usage:
        engine = build_engine()
        analysis = await engine.analyze_location(52.3676, 4.9041, 500)
        check = await engine.check_concept_viability("smoothiebar", 52.3676, 4.9041)
        await engine.close()
    """

    def __init__(
        self,
        settings: Settings,
        cache: LocationCache,
        analyzer: LocationAnalyzer,
        viability: ConceptViabilityEngine,
        clients: List[BaseAPIClient],
        llm: Optional[LLMClient] = None,
    ):
        self.settings = settings
        self.cache = cache
        self.analyzer = analyzer
        self.viability = viability
        self.llm = llm
        self._clients = clients

    async def analyze_location(self, lat: float, lng: float, radius: Optional[int] = None) -> EnhancedLocationAnalysis:
        return await self.analyzer.analyze(lat, lng, radius or self.settings.default_radius_meters)

    async def check_concept_viability(
        self,
        concept: str,
        lat: float,
        lng: float,
        radius: int = 500,
    ) -> ConceptCheckResult:
        """
        Raises:
            ConceptCheckTimeoutError: When the global deadline passes
        """
        return await self.viability.check(concept, lat, lng, radius)

    async def close(self) -> None:
        for client in self._clients:
            await client.close()
        if self.llm is not None:
            await self.llm.aclose()
        await self.cache.close()


def build_engine(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    llm: Optional[LLMClient] = None,
) -> LocationIntelligence:
    """
    Construct the full engine from settings.

    Args:
        settings: Settings (defaults to get_settings())
        http_client: Shared client for every upstream; each provider owns its own when None
        llm: LLM client override; built from settings when None

    Returns:
        LocationIntelligence
    """
    settings = settings or get_settings()
    cache = build_cache(settings, http_client=http_client)
    llm = llm or build_llm_client(settings)

    open_timeout = settings.provider_timeout_seconds
    places = PlacesProvider(
        api_key=settings.get_google_places_api_key(),
        cache=cache,
        timeout=settings.places_timeout_seconds,
        http_client=http_client,
    )
    demographics = DemographicsProvider(cache=cache, timeout=open_timeout, http_client=http_client)
    building = BuildingProvider(cache=cache, timeout=open_timeout, http_client=http_client)
    transit = TransitProvider(
        cache=cache,
        places=places,
        overpass_url=settings.overpass_base_url,
        timeout=open_timeout,
        http_client=http_client,
    )
    openmap = OpenMapProvider(
        cache=cache,
        overpass_url=settings.overpass_base_url,
        timeout=open_timeout,
        http_client=http_client,
    )

    analyzer = LocationAnalyzer(cache, demographics, building, transit, openmap, places)
    classifier = CompetitorClassifier(
        llm=llm,
        places=places,
        cache=cache,
        timeout=settings.agent_timeout_seconds,
        max_steps=settings.agent_max_steps,
    )
    viability = ConceptViabilityEngine(
        analyzer=analyzer,
        places=places,
        classifier=classifier,
        cache=cache,
        llm=llm,
        timeout=settings.concept_check_timeout_seconds,
    )

    logger.info(
        f"Engine ready: places {'on' if places.is_configured else 'off'}, "
        f"llm {llm.provider if llm else 'off'}, cache {'on' if cache.enabled else 'off'}"
    )

    return LocationIntelligence(
        settings=settings,
        cache=cache,
        analyzer=analyzer,
        viability=viability,
        clients=[places, demographics, building, transit, openmap],
        llm=llm,
    )

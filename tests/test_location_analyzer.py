"""
Unit tests for the location analyzer.

Providers are replaced with AsyncMocks; the analyzer's own composition
logic is what is under test.
"""
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from location_intel.core.models import (
    AgeDistribution,
    BuildingInfo,
    Demographics,
    FootTrafficEstimate,
    NearbyPlace,
    OpenMapResult,
    TransitAnalysis,
    TransitStop,
)
from location_intel.services.location_analyzer import (
    LocationAnalyzer,
    build_summary,
    data_quality_for,
)
from location_intel.sources.openmap import NO_DATA_SUMMARY, analyze_places

POINT = (52.3731, 4.8926)


def _demographics(**overrides):
    values = dict(
        area_code="BU03630000",
        area_name="Burgwallen-Oude Zijde",
        municipality_name="Amsterdam",
        population=4210,
        avg_income=36.4,
        age_distribution=AgeDistribution(young_pct=40, working_pct=50, senior_pct=10),
        density=12980,
    )
    values.update(overrides)
    return Demographics(**values)


def _transit(score=8.5, label="excellent"):
    return TransitAnalysis(
        stops=[TransitStop(name="Dam", mode="tram", distance_meters=30)],
        score=score,
        accessibility_label=label,
    )


def _openmap():
    places = [
        NearbyPlace(name="Haesje Claes", type="restaurant", category="hospitality_competitor",
                    distance_meters=40, lat=52.3733, lng=4.8929),
        NearbyPlace(name="Café", type="cafe", category="hospitality_complementary",
                    distance_meters=60, lat=52.3735, lng=4.8920),
    ]
    return OpenMapResult(places=places, analysis=analyze_places(places, 500))


def _provider(result=None, error=None):
    provider = MagicMock()
    provider.fetch = AsyncMock(return_value=result, side_effect=error)
    return provider


def make_analyzer(cache, demographics=None, building=None, transit=None, openmap=None,
                  commercial=None, commercial_error=None):
    places = MagicMock()
    places.nearby_competitors = AsyncMock(return_value=commercial, side_effect=commercial_error)
    return LocationAnalyzer(
        cache,
        _provider(demographics),
        _provider(building),
        _provider(transit),
        openmap if isinstance(openmap, MagicMock) else _provider(openmap),
        places,
    )


class TestHelpers:

    @pytest.mark.unit
    @pytest.mark.parametrize("count,quality", [
        (0, "basic"), (1, "basic"), (2, "partial"), (3, "partial"), (4, "full"), (5, "full"),
    ])
    def test_data_quality(self, count, quality):
        assert data_quality_for(count) == quality

    @pytest.mark.unit
    def test_summary_signals(self):
        summary = build_summary(
            "Base.",
            _demographics(),
            _transit(),
            FootTrafficEstimate(daily_estimate=2400, confidence="high", sources=["a"]),
        )

        assert summary.startswith("Base.")
        assert "above the national average" in summary
        assert "Many young residents" in summary
        assert "Excellent public transport" in summary
        assert "2,400 passers-by" in summary

    @pytest.mark.unit
    def test_summary_low_income(self):
        summary = build_summary("Base.", _demographics(avg_income=20.0), None, None)
        assert "affordable concepts" in summary


class TestLocationAnalyzer:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_all_sources(self, memory_cache, make_competitor):
        commercial = [make_competitor("Brasserie Haesje Claes", type="restaurant", distance_meters=45,
                                      review_count=2000)]
        analyzer = make_analyzer(
            memory_cache,
            demographics=_demographics(),
            building=BuildingInfo(construction_year=1650, allowed_uses=["bijeenkomstfunctie"],
                                  is_hospitality_suitable=True),
            transit=_transit(),
            openmap=_openmap(),
            commercial=commercial,
        )

        analysis = await analyzer.analyze(*POINT, 500)

        assert analysis.data_sources == ["openmap", "demographics", "building", "transit", "commercial"]
        assert analysis.data_quality == "full"
        assert analysis.stats.transport_score == 8.5
        assert analysis.demographics.area_name == "Burgwallen-Oude Zijde"
        assert analysis.building.construction_year == 1650
        # "Haesje Claes" from the open map is the same venue as the commercial entry
        assert [c.name for c in analysis.competitors] == ["Brasserie Haesje Claes", "Café"]
        assert analysis.foot_traffic.daily_estimate >= 100
        assert "Excellent public transport" in analysis.summary
        assert datetime.fromisoformat(analysis.fetched_at).tzinfo is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_every_source_failing(self, memory_cache):
        openmap = _provider(error=RuntimeError("boom"))
        analyzer = make_analyzer(memory_cache, openmap=openmap, commercial_error=RuntimeError("boom"))

        analysis = await analyzer.analyze(*POINT, 500)

        assert analysis.data_sources == []
        assert analysis.data_quality == "basic"
        assert analysis.buzz_index == 1
        assert analysis.summary == NO_DATA_SUMMARY
        assert analysis.competitors == []
        assert analysis.demographics is None
        assert analysis.transit_analysis is None
        assert analysis.foot_traffic.daily_estimate == 100
        assert analysis.foot_traffic.sources == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_open_map_is_not_listed(self, memory_cache):
        openmap = _provider(error=RuntimeError("overpass down"))
        analyzer = make_analyzer(memory_cache, demographics=_demographics(), transit=_transit(), openmap=openmap)

        analysis = await analyzer.analyze(*POINT, 500)

        assert analysis.data_sources == ["demographics", "transit"]
        assert analysis.data_quality == "partial"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_without_commercial_key(self, memory_cache):
        analyzer = make_analyzer(memory_cache, transit=_transit(3.0, "poor"), openmap=_openmap())

        analysis = await analyzer.analyze(*POINT, 500)

        assert analysis.data_sources == ["openmap", "transit"]
        assert analysis.data_quality == "partial"
        assert all(c.source == "openmap" for c in analysis.competitors)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_result_is_cached(self, memory_cache):
        analyzer = make_analyzer(memory_cache, demographics=_demographics(), openmap=_openmap())

        first = await analyzer.analyze(*POINT, 500)
        second = await analyzer.analyze(*POINT, 500)

        assert second == first
        assert analyzer.demographics.fetch.await_count == 1
        assert analyzer.openmap.fetch.await_count == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_radius_is_passed_through(self, memory_cache):
        analyzer = make_analyzer(memory_cache, openmap=_openmap())

        await analyzer.analyze(*POINT, 1200)

        analyzer.transit.fetch.assert_awaited_once_with(*POINT, 1200)
        analyzer.places.nearby_competitors.assert_awaited_once_with(*POINT, 1200)

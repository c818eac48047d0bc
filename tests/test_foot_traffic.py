"""
Unit tests for the daily foot traffic estimate.
"""
import pytest

from location_intel.core.models import Demographics, TransitAnalysis
from location_intel.sources.foot_traffic import (
    SOURCE_DENSITY,
    SOURCE_EVENING,
    SOURCE_HOSPITALITY,
    SOURCE_OFFICES,
    SOURCE_REVIEWS,
    SOURCE_TRANSIT,
    SOURCE_UPSCALE,
    closes_late,
    estimate_foot_traffic,
    has_evening_hours,
)


def _demographics(density):
    return Demographics(area_code="BU03630000", area_name="Centrum", density=density)


def _transit(score):
    return TransitAnalysis(stops=[], score=score, accessibility_label="fair")


class TestClosingTimes:

    @pytest.mark.unit
    @pytest.mark.parametrize("line,expected", [
        ("Friday: 11:00 – 23:30", True),
        ("Saturday: 16:00 – 22:00", True),
        ("Monday: 09:00 – 01:00", True),
        ("Tuesday: 08:00 – 17:00", False),
        ("Friday: 5:00 PM – 11:00 PM", True),
        ("Monday: 8:00 AM – 6:00 PM", False),
        ("Saturday: 6:00 PM – 2:00 AM", True),
        ("Sunday: Closed", False),
        ("Wednesday: 10:00 – 14:00, 17:00 – 23:00", True),
    ])
    def test_closes_late(self, line, expected):
        assert closes_late(line) is expected

    @pytest.mark.unit
    def test_has_evening_hours(self, make_competitor):
        assert has_evening_hours(make_competitor("Late", hours=["Friday: 11:00 – 23:30"])) is True
        assert has_evening_hours(make_competitor("Early", hours=["Friday: 07:00 – 15:00"])) is False
        assert has_evening_hours(make_competitor("Unknown")) is False


class TestEstimate:

    @pytest.mark.unit
    def test_no_signals_is_floor(self):
        estimate = estimate_foot_traffic(None, None, hospitality_count=0, office_count=0)

        assert estimate.daily_estimate == 100
        assert estimate.confidence == "low"
        assert estimate.sources == []

    @pytest.mark.unit
    def test_area_signals(self):
        estimate = estimate_foot_traffic(
            _demographics(10000),   # 500
            _transit(5),            # 750
            hospitality_count=10,   # 500
            office_count=4,         # 30
        )

        assert estimate.daily_estimate == 1800
        assert estimate.confidence == "medium"
        assert estimate.sources == [SOURCE_DENSITY, SOURCE_TRANSIT, SOURCE_HOSPITALITY, SOURCE_OFFICES]

    @pytest.mark.unit
    def test_all_signals(self, make_competitor):
        competitors = [
            make_competitor("A", review_count=600, price_level=3, hours=["Friday: 11:00 – 23:30"]),
            make_competitor("B", review_count=400, price_level=3, hours=["Saturday: 17:00 – 01:00"]),
            make_competitor("C", price_level=2),
            make_competitor("D", source="openmap"),
        ]

        estimate = estimate_foot_traffic(
            _demographics(10000), _transit(5), hospitality_count=10, office_count=4, competitors=competitors
        )

        # 1780 + reviews 500 + evening 200 + upscale 150
        assert estimate.daily_estimate == 2600
        assert estimate.confidence == "high"
        assert SOURCE_REVIEWS in estimate.sources
        assert SOURCE_EVENING in estimate.sources
        assert SOURCE_UPSCALE in estimate.sources

    @pytest.mark.unit
    def test_density_and_hospitality_capped(self):
        estimate = estimate_foot_traffic(_demographics(100000), None, hospitality_count=100, office_count=0)
        assert estimate.daily_estimate == 3000

    @pytest.mark.unit
    def test_rounds_half_up_to_hundreds(self):
        estimate = estimate_foot_traffic(None, None, hospitality_count=3, office_count=0)
        assert estimate.daily_estimate == 200

    @pytest.mark.unit
    def test_single_late_venue_is_not_an_evening_economy(self, make_competitor):
        competitors = [make_competitor("A", hours=["Friday: 11:00 – 23:30"])]

        estimate = estimate_foot_traffic(None, None, 0, 0, competitors=competitors)
        assert SOURCE_EVENING not in estimate.sources

    @pytest.mark.unit
    def test_zero_transit_still_counts_as_source(self):
        estimate = estimate_foot_traffic(None, _transit(0), 0, 0)

        assert estimate.sources == [SOURCE_TRANSIT]
        assert estimate.daily_estimate == 100

    @pytest.mark.unit
    @pytest.mark.parametrize("density,hospitality,offices", [
        (None, 0, 0), (50, 1, 0), (3333, 7, 3), (25000, 40, 20),
    ])
    def test_always_multiple_of_hundred(self, density, hospitality, offices):
        demographics = _demographics(density) if density else None
        estimate = estimate_foot_traffic(demographics, None, hospitality, offices)

        assert estimate.daily_estimate >= 100
        assert estimate.daily_estimate % 100 == 0

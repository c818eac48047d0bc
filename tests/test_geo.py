"""
Unit tests for distance and projection helpers.
"""
import pytest

from location_intel.core.geo import (
    distance_meters,
    haversine_meters,
    is_in_netherlands,
    rd_bbox,
    wgs84_to_rd,
)
from location_intel.core.mathutils import clamp, round_half_up


class TestDistance:

    @pytest.mark.unit
    def test_same_point_is_zero(self):
        assert haversine_meters(52.37, 4.89, 52.37, 4.89) == 0

    @pytest.mark.unit
    def test_one_degree_of_latitude(self):
        assert distance_meters(52.0, 5.0, 53.0, 5.0) == 111195

    @pytest.mark.unit
    def test_symmetric(self):
        a = haversine_meters(52.3731, 4.8926, 52.0907, 5.1214)
        b = haversine_meters(52.0907, 5.1214, 52.3731, 4.8926)
        assert a == pytest.approx(b)

    @pytest.mark.unit
    def test_returns_whole_meters(self):
        assert isinstance(distance_meters(52.3731, 4.8926, 52.3740, 4.8950), int)


class TestNetherlandsBounds:

    @pytest.mark.unit
    @pytest.mark.parametrize("lat,lng", [
        (52.3731, 4.8926),   # Amsterdam
        (51.4416, 5.4697),   # Eindhoven
        (53.2194, 6.5665),   # Groningen
    ])
    def test_dutch_cities_inside(self, lat, lng):
        assert is_in_netherlands(lat, lng) is True

    @pytest.mark.unit
    @pytest.mark.parametrize("lat,lng", [
        (48.8566, 2.3522),   # Paris
        (52.5200, 13.4050),  # Berlin
        (0.0, 0.0),
    ])
    def test_elsewhere_outside(self, lat, lng):
        assert is_in_netherlands(lat, lng) is False


class TestRijksdriehoek:

    @pytest.mark.unit
    def test_reference_point(self):
        """Amersfoort maps onto the grid origin offsets."""
        assert wgs84_to_rd(52.15517440, 5.38720621) == (155000, 463000)

    @pytest.mark.unit
    def test_dam_square(self):
        x, y = wgs84_to_rd(52.3731, 4.8926)
        assert abs(x - 121400) < 500
        assert abs(y - 487400) < 500

    @pytest.mark.unit
    def test_bbox_is_centered(self):
        x, y = wgs84_to_rd(52.3731, 4.8926)
        bbox = rd_bbox(52.3731, 4.8926, 10)
        assert bbox == f"{x - 10},{y - 10},{x + 10},{y + 10},EPSG:28992"


class TestMathHelpers:

    @pytest.mark.unit
    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.4) == 2
        assert round_half_up(-2.5) == -2

    @pytest.mark.unit
    def test_clamp(self):
        assert clamp(120, 0, 100) == 100
        assert clamp(-3, 0, 100) == 0
        assert clamp(42, 0, 100) == 42

"""
Unit tests for the public transport provider and its scoring.
"""
from urllib.parse import parse_qs

import httpx
import pytest

from location_intel.core.models import TransitStop
from location_intel.sources.places import PlacesProvider
from location_intel.sources.transit import (
    TransitProvider,
    build_stops_query,
    parse_stop,
    score_stops,
    score_to_label,
    transit_mode_for_tags,
)

POINT = (52.3731, 4.8926)
OVERPASS_URL = "https://overpass.test/api/interpreter"

OSM_ELEMENTS = [
    {"type": "node", "lat": 52.3733, "lon": 4.8929,
     "tags": {"railway": "tram_stop", "name": "Dam", "route_ref": "2;12; 13"}},
    {"type": "node", "lat": 52.3735, "lon": 4.8920,
     "tags": {"public_transport": "stop_position", "bus": "yes", "name": "Dam/Raadhuisstraat"}},
    {"type": "node", "lat": 52.3789, "lon": 4.9003,
     "tags": {"railway": "station", "name": "Amsterdam Centraal"}},
]


def _stop(mode, distance, name="Stop"):
    return TransitStop(name=name, mode=mode, distance_meters=distance)


# =============================================================================
# Scoring
# =============================================================================


class TestScoring:

    @pytest.mark.unit
    def test_no_stops(self):
        assert score_stops([]) == 0
        assert score_to_label(0) == "bad"

    @pytest.mark.unit
    def test_points_per_mode_and_distance(self):
        stops = [
            _stop("train", 900),   # 3
            _stop("metro", 700),   # 2
            _stop("tram", 400),    # 1.5
            _stop("bus", 300),     # 0.5
            _stop("bus", 350),     # 0.5
            _stop("bus", 600),     # 0
        ]
        assert score_stops(stops) == 7.5
        assert score_to_label(7.5) == "good"

    @pytest.mark.unit
    def test_outer_rings(self):
        stops = [_stop("train", 1800), _stop("metro", 1200), _stop("tram", 900)]
        assert score_stops(stops) == 3.0

    @pytest.mark.unit
    def test_capped_at_ten(self):
        stops = [_stop("train", 500, f"Station {i}") for i in range(5)]
        assert score_stops(stops) == 10

    @pytest.mark.unit
    @pytest.mark.parametrize("score,label", [
        (10, "excellent"),
        (8, "excellent"),
        (6, "good"),
        (4, "fair"),
        (2, "poor"),
        (1.9, "bad"),
    ])
    def test_labels(self, score, label):
        assert score_to_label(score) == label


# =============================================================================
# OSM parsing
# =============================================================================


class TestParsing:

    @pytest.mark.unit
    @pytest.mark.parametrize("tags,mode", [
        ({"railway": "station"}, "train"),
        ({"railway": "halt"}, "train"),
        ({"station": "subway"}, "metro"),
        ({"railway": "tram_stop"}, "tram"),
        ({"public_transport": "stop_position", "tram": "yes"}, "tram"),
        ({"public_transport": "stop_position"}, "bus"),
    ])
    def test_mode_from_tags(self, tags, mode):
        assert transit_mode_for_tags(tags) == mode

    @pytest.mark.unit
    def test_parse_stop_lines(self):
        stop = parse_stop(OSM_ELEMENTS[0], *POINT)

        assert stop.name == "Dam"
        assert stop.mode == "tram"
        assert stop.lines == ["2", "12", "13"]

    @pytest.mark.unit
    def test_unnamed_stop_gets_default_name(self):
        stop = parse_stop({"lat": 52.3731, "lon": 4.8926, "tags": {"railway": "tram_stop"}}, *POINT)
        assert stop.name == "Tram stop"
        assert stop.distance_meters == 0

    @pytest.mark.unit
    def test_query_searches_rail_wider(self):
        query = build_stops_query(52.37, 4.89, 500)
        assert "(around:500,52.37,4.89)" in query
        assert "(around:1000,52.37,4.89)" in query
        assert "(around:750,52.37,4.89)" in query


# =============================================================================
# Provider
# =============================================================================


def make_handler(osm=None, google=None):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.host == "overpass.test":
            if osm is None:
                return httpx.Response(504, text="Gateway timeout")
            return httpx.Response(200, json={"elements": osm})
        if google is None:
            return httpx.Response(500)
        return httpx.Response(200, json={"places": google})

    handler.seen = seen
    return handler


class TestTransitProvider:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_overpass_only(self, mock_http):
        handler = make_handler(osm=OSM_ELEMENTS)
        client = mock_http(handler)
        provider = TransitProvider(overpass_url=OVERPASS_URL, http_client=client)

        result = await provider.fetch(*POINT, 500)

        assert [s.name for s in result.stops][:2] == ["Dam", "Dam/Raadhuisstraat"]
        assert result.stops[-1].mode == "train"
        # tram <=500 (1.5) + bus <=400 (0.5) + train <=1000 (3)
        assert result.score == 5.0
        assert result.accessibility_label == "fair"
        form = parse_qs(handler.seen[0].content.decode())
        assert "[out:json]" in form["data"][0]
        await client.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_commercial_stops_merged(self, mock_http):
        google = [
            {
                "displayName": {"text": "Centraal Station"},
                "types": ["train_station"],
                "location": {"latitude": 52.3790, "longitude": 4.9000},
            },
            {
                "displayName": {"text": "Rokin"},
                "types": ["subway_station"],
                "location": {"latitude": 52.3700, "longitude": 4.8930},
            },
        ]
        client = mock_http(make_handler(osm=OSM_ELEMENTS, google=google))
        places = PlacesProvider(api_key="test-key", http_client=client)
        provider = TransitProvider(places=places, overpass_url=OVERPASS_URL, http_client=client)

        result = await provider.fetch(*POINT, 500)

        names = [s.name for s in result.stops]
        assert "Rokin" in names
        assert "Centraal Station" not in names
        assert len(result.stops) == 4
        await client.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_overpass_down_uses_commercial(self, mock_http):
        google = [{
            "displayName": {"text": "Rokin"},
            "types": ["subway_station"],
            "location": {"latitude": 52.3700, "longitude": 4.8930},
        }]
        client = mock_http(make_handler(google=google))
        places = PlacesProvider(api_key="test-key", http_client=client)
        provider = TransitProvider(places=places, overpass_url=OVERPASS_URL, http_client=client)

        result = await provider.fetch(*POINT, 500)

        assert [s.name for s in result.stops] == ["Rokin"]
        assert result.score == 2.0
        await client.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_both_down_is_no_data(self, mock_http):
        """No data is reported as None rather than a zero score."""
        client = mock_http(make_handler())
        places = PlacesProvider(api_key="test-key", http_client=client)
        provider = TransitProvider(places=places, overpass_url=OVERPASS_URL, http_client=client)

        assert await provider.fetch(*POINT, 500) is None
        await client.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_overpass_is_a_bad_score(self, mock_http):
        client = mock_http(make_handler(osm=[]))
        provider = TransitProvider(overpass_url=OVERPASS_URL, http_client=client)

        result = await provider.fetch(*POINT, 500)

        assert result.stops == []
        assert result.score == 0
        assert result.accessibility_label == "bad"
        await client.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_malformed_overpass_payload(self, mock_http):
        client = mock_http(lambda request: httpx.Response(200, json={"remark": "runtime error"}))
        provider = TransitProvider(overpass_url=OVERPASS_URL, http_client=client)

        assert await provider.fetch(*POINT, 500) is None
        await client.aclose()

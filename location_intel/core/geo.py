"""
Distance and projection helpers.

The national grid conversion is the usual polynomial approximation of
RD New (EPSG:28992). It is good to about a meter inside the Netherlands
and meaningless outside it.
"""
import math
from typing import Tuple

EARTH_RADIUS_METERS = 6371000

# Netherlands bounding box, used to reject points the RD transform cannot handle
NL_LAT_MIN = 50.7
NL_LAT_MAX = 53.7
NL_LNG_MIN = 3.2
NL_LNG_MAX = 7.3

# Amersfoort reference point
_RD_REF_LAT = 52.15517440
_RD_REF_LNG = 5.38720621
_RD_REF_X = 155000
_RD_REF_Y = 463000


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two WGS84 points.

    Args:
        lat1, lng1: First point coordinates
        lat2, lng2: Second point coordinates

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lng = math.radians(lng2 - lng1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> int:
    """Haversine distance rounded to whole meters."""
    return int(round(haversine_meters(lat1, lng1, lat2, lng2)))


def is_in_netherlands(lat: float, lng: float) -> bool:
    """Rough bounding-box check for the area where the RD transform is valid."""
    return NL_LAT_MIN <= lat <= NL_LAT_MAX and NL_LNG_MIN <= lng <= NL_LNG_MAX


def wgs84_to_rd(lat: float, lng: float) -> Tuple[int, int]:
    """
    Convert WGS84 degrees to Rijksdriehoeksstelsel meters.

    Args:
        lat: Latitude in degrees
        lng: Longitude in degrees

    Returns:
        (x, y) rounded to whole meters
    """
    d_lat = 0.36 * (lat - _RD_REF_LAT)
    d_lng = 0.36 * (lng - _RD_REF_LNG)

    x = (
        _RD_REF_X
        + 190094.945 * d_lng
        - 11832.228 * d_lat * d_lng
        - 114.221 * d_lat ** 2 * d_lng
    )
    y = (
        _RD_REF_Y
        + 309056.544 * d_lat
        + 3638.893 * d_lng ** 2
        + 73.077 * d_lat ** 2
        - 157.984 * d_lat * d_lng ** 2
        + 59.788 * d_lat ** 3
    )
    return int(round(x)), int(round(y))


def rd_bbox(lat: float, lng: float, half_size: int) -> str:
    """WFS bbox string in EPSG:28992 centered on the point."""
    x, y = wgs84_to_rd(lat, lng)
    return f"{x - half_size},{y - half_size},{x + half_size},{y + half_size},EPSG:28992"

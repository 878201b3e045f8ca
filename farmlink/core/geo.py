"""Great-circle distance helpers used to scope request discovery."""

import math
from typing import Mapping

EARTH_RADIUS_M = 6_371_000.0


def distance_meters(a: Mapping[str, float], b: Mapping[str, float]) -> float:
    """Haversine distance in metres between two ``{"lat", "lng"}`` points given in degrees."""
    d2r = math.pi / 180
    lat1, lat2 = a["lat"] * d2r, b["lat"] * d2r
    d_lat = (b["lat"] - a["lat"]) * d2r
    d_lng = (b["lng"] - a["lng"]) * d2r
    s = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(s), math.sqrt(1 - s))


def within_radius(origin: Mapping[str, float], point: Mapping[str, float], radius_km: float) -> bool:
    return distance_meters(origin, point) <= radius_km * 1000

"""
Geographic helpers.

`Coordinate` is the single location type passed between layers; the
distance is the great-circle (haversine) distance in meters.
"""

from dataclasses import dataclass
from math import radians, sin, cos, sqrt, atan2

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_MILE = 1609.34


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float

    def __post_init__(self):
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude out of range: {self.lat}")
        if not -180.0 <= self.lon <= 180.0:
            raise ValueError(f"Longitude out of range: {self.lon}")


def distance_m(a: Coordinate, b: Coordinate) -> float:
    phi1, phi2 = radians(a.lat), radians(b.lat)
    dphi = radians(b.lat - a.lat)
    dlambda = radians(b.lon - a.lon)

    h = sin(dphi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlambda / 2) ** 2
    c = 2 * atan2(sqrt(h), sqrt(max(0.0, 1 - h)))
    return EARTH_RADIUS_M * c


def is_within_radius(point: Coordinate, center: Coordinate, radius_m: float) -> bool:
    return distance_m(point, center) <= radius_m


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(value, hi))


def format_distance(meters: float) -> str:
    """Human label used by clients, e.g. `"1.2mi"`."""
    return f"{meters / METERS_PER_MILE:.1f}mi"

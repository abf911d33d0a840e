import math

from geo import EARTH_RADIUS_M, Coordinate

ORIGIN = Coordinate(37.7749, -122.4194)
MILE = 1609.34


def north_of(origin: Coordinate, meters: float) -> Coordinate:
    """A point exactly `meters` due north of `origin`."""
    return Coordinate(origin.lat + math.degrees(meters / EARTH_RADIUS_M), origin.lon)

"""
Geofence validation — is a reported position inside a location's perimeter.

Pure functions, no I/O. Radius bounds are enforced where locations are
created, not here.
"""

from __future__ import annotations

from math import atan2, cos, radians, sin, sqrt
from typing import NamedTuple

EARTH_RADIUS_METERS = 6_371_000


class Position(NamedTuple):
    latitude: float
    longitude: float


def haversine_distance(a: Position, b: Position) -> float:
    """Great-circle distance between two positions, in meters."""
    phi1, phi2 = radians(a.latitude), radians(b.latitude)
    d_phi = radians(b.latitude - a.latitude)
    d_lambda = radians(b.longitude - a.longitude)

    h = sin(d_phi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_METERS * 2 * atan2(sqrt(h), sqrt(1 - h))


def is_within_perimeter(position: Position, center: Position, radius_meters: float) -> bool:
    return haversine_distance(position, center) <= radius_meters

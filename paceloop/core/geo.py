"""
Geo Math
========

Stateless distance, speed and pace formulas over coordinates.
Uses the Haversine formula on a spherical Earth.

Usage:
    km = distance_km(a, b)
    total = route_distance_km(session.route_points)
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import timedelta

from ..domain.models import Coordinate

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_DEGREE = 111_000.0  # approximate length of one degree of latitude

# Segments at or below this length are treated as residual jitter
MIN_SEGMENT_KM = 0.001


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points using Haversine formula.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def distance_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates in meters."""
    return haversine_m(a.lat, a.lon, b.lat, b.lon)


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates in kilometers."""
    return distance_m(a, b) / 1000.0


def route_distance_km(
    points: Sequence[Coordinate], min_segment_km: float = MIN_SEGMENT_KM
) -> float:
    """
    Total length of a route in kilometers.

    Segments no longer than ``min_segment_km`` are skipped so that jitter
    which slipped past the filter does not accumulate.
    """
    if len(points) < 2:
        return 0.0

    total = 0.0
    for start, end in zip(points, points[1:]):
        segment = distance_km(start, end)
        if segment > min_segment_km:
            total += segment
    return total


def speed_kmh(a: Coordinate, b: Coordinate, elapsed: timedelta) -> float:
    """Speed between two coordinates in km/h, 0 when no time has passed."""
    seconds = elapsed.total_seconds()
    if seconds <= 0:
        return 0.0
    return distance_km(a, b) / (seconds / 3600.0)


def pace_min_per_km(distance: float, elapsed: timedelta) -> float:
    """Pace in minutes per kilometer, 0 when no distance was covered."""
    if distance <= 0:
        return 0.0
    return (elapsed.total_seconds() / 60.0) / distance


def meters_to_degrees(meters: float, latitude: float | None = None) -> float:
    """
    Convert a ground distance to degrees.

    Without ``latitude`` the result is in degrees of latitude; with it, in
    degrees of longitude at that latitude (meridians converge towards the
    poles).
    """
    if latitude is None:
        return meters / METERS_PER_DEGREE
    scale = math.cos(math.radians(latitude))
    # Clamp so the poles do not divide by zero
    return meters / (METERS_PER_DEGREE * max(scale, 1e-6))

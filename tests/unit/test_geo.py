"""
Geo Math Unit Tests
===================

Tests for distance, route length, speed and pace formulas.
"""

from datetime import timedelta

import pytest

from paceloop.core.geo import (
    distance_km,
    haversine_m,
    meters_to_degrees,
    pace_min_per_km,
    route_distance_km,
    speed_kmh,
)
from paceloop.domain.models import Coordinate
from tests.conftest import east


class TestHaversineFormula:
    """Tests for haversine distance calculation."""

    def test_same_point_zero_distance(self):
        """Same point should return 0."""
        a = Coordinate(lat=41.0, lon=29.0)
        assert distance_km(a, a) == 0.0

    def test_known_distance_istanbul_ankara(self):
        """Istanbul to Ankara is approximately 350km."""
        d = distance_km(Coordinate(lat=41.0082, lon=28.9784), Coordinate(lat=39.9334, lon=32.8597))
        assert 340 < d < 360

    def test_equator_one_degree(self):
        """One degree longitude at equator is ~111km."""
        d = haversine_m(0, 0, 0, 1) / 1000
        assert 110 < d < 112

    def test_symmetry(self):
        """Distance A->B should equal B->A exactly."""
        a = Coordinate(lat=41.0, lon=29.0)
        b = Coordinate(lat=42.0, lon=30.0)
        assert distance_km(a, b) == distance_km(b, a)

    def test_short_distance(self):
        """0.0009 degrees of latitude is roughly 100m."""
        d = haversine_m(37.7749, -122.4194, 37.7758, -122.4194)
        assert 90 < d < 110


class TestRouteDistance:
    """Tests for route_distance_km."""

    def test_empty_and_single_point(self):
        assert route_distance_km([]) == 0.0
        assert route_distance_km([east(0)]) == 0.0

    def test_sum_of_segments(self):
        route = [east(0), east(0.5), east(1.25)]
        assert route_distance_km(route) == pytest.approx(1.25, rel=1e-9)

    def test_sub_meter_segments_skipped(self):
        """Segments of a metre or less are treated as jitter."""
        route = [east(0), east(0.0005), east(0.0010), east(0.0015)]
        assert route_distance_km(route) == 0.0

    def test_mixed_segments(self):
        route = [east(0), east(0.0005), east(0.1005)]
        assert route_distance_km(route) == pytest.approx(0.1, rel=1e-6)


class TestSpeedAndPace:
    def test_speed_kmh(self):
        assert speed_kmh(east(0), east(1), timedelta(minutes=6)) == pytest.approx(10.0)

    def test_speed_zero_elapsed(self):
        assert speed_kmh(east(0), east(1), timedelta(0)) == 0.0
        assert speed_kmh(east(0), east(1), timedelta(seconds=-3)) == 0.0

    def test_pace(self):
        assert pace_min_per_km(2.0, timedelta(minutes=11)) == pytest.approx(5.5)

    def test_pace_zero_distance(self):
        assert pace_min_per_km(0.0, timedelta(minutes=11)) == 0.0


class TestMetersToDegrees:
    def test_latitude_degrees(self):
        assert meters_to_degrees(111_000.0) == pytest.approx(1.0)

    def test_longitude_scaled_by_latitude(self):
        """A metre spans more longitude degrees away from the equator."""
        assert meters_to_degrees(10.0, 60.0) == pytest.approx(2 * meters_to_degrees(10.0, 0.0))

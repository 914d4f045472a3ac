"""PaceLoop Core - Geo math, position filter, session tracker and events."""

from .events import Event, SessionEventBus, SessionEventType
from .filter import AxisFilter, FilterPhase, PositionFilter
from .geo import distance_km, pace_min_per_km, route_distance_km, speed_kmh
from .tracker import SessionTracker, SplitCounter

__all__ = [
    "AxisFilter",
    # Events
    "Event",
    "FilterPhase",
    "PositionFilter",
    "SessionEventBus",
    "SessionEventType",
    "SessionTracker",
    "SplitCounter",
    # Geo math
    "distance_km",
    "pace_min_per_km",
    "route_distance_km",
    "speed_kmh",
]

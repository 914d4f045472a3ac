"""PaceLoop Domain Layer - Core workout models and enums."""

from .models import (
    ActivityType,
    Coordinate,
    RawSample,
    Session,
    SessionStatus,
    SmoothedPosition,
    UserAggregateStats,
    format_split,
)

__all__ = [
    "ActivityType",
    "Coordinate",
    "RawSample",
    "Session",
    "SessionStatus",
    "SmoothedPosition",
    "UserAggregateStats",
    "format_split",
]

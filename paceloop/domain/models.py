"""PaceLoop Domain Models - Pydantic models for core entities."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ActivityType(str, Enum):
    """GPS-trackable workout types."""

    RUNNING = "Running"
    CYCLING = "Cycling"
    WALKING = "Walking"
    OTHER = "Other"

    @classmethod
    def _missing_(cls, value: object) -> ActivityType | None:
        # Case-insensitive lookup; unknown names map to OTHER
        if isinstance(value, str):
            wanted = value.strip().lower()
            for member in cls:
                if member.value.lower() == wanted or member.name.lower() == wanted:
                    return member
            return cls.OTHER
        return None


class SessionStatus(str, Enum):
    """Workout session lifecycle states."""

    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    DISCARDED = "discarded"


class Coordinate(BaseModel):
    """A resolved geographic coordinate (WGS-84 degrees)."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lon}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Coordinate:
        lon = data["lng"] if "lng" in data else data["lon"]
        return cls(lat=float(data["lat"]), lon=float(lon))


class RawSample(BaseModel):
    """Single unfiltered reading from a location provider."""

    model_config = ConfigDict(frozen=True)

    coordinate: Coordinate
    accuracy_m: float = Field(..., ge=0)  # reported horizontal accuracy
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def at(
        cls,
        lat: float,
        lon: float,
        accuracy_m: float,
        timestamp: datetime | None = None,
    ) -> RawSample:
        """Shorthand constructor from plain degrees."""
        return cls(
            coordinate=Coordinate(lat=lat, lon=lon),
            accuracy_m=accuracy_m,
            timestamp=timestamp or datetime.now(UTC),
        )


class SmoothedPosition(BaseModel):
    """Filtered position emitted by the position filter."""

    model_config = ConfigDict(frozen=True)

    coordinate: Coordinate
    timestamp: datetime


def whole_seconds(duration: timedelta) -> timedelta:
    """Truncate a duration to whole seconds (the stored resolution)."""
    return timedelta(seconds=int(duration.total_seconds()))


def format_split(split: timedelta) -> str:
    """Format a split duration as MM:SS."""
    total_seconds = int(split.total_seconds())
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


class Session(BaseModel):
    """
    A single workout (aggregate root).

    Immutable: every tracker mutation produces a new value via
    ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    activity_type: ActivityType = ActivityType.RUNNING
    start_time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    status: SessionStatus = SessionStatus.IDLE
    elapsed: timedelta = timedelta(0)
    distance_km: float = Field(0.0, ge=0)
    route_points: tuple[Coordinate, ...] = ()
    splits: tuple[timedelta, ...] = ()  # time per whole distance unit
    heart_rate: float | None = None
    current_speed_kmh: float | None = None  # transient, never serialized

    @field_validator("activity_type", mode="before")
    @classmethod
    def _coerce_activity_type(cls, value: Any) -> Any:
        if isinstance(value, str) and not isinstance(value, ActivityType):
            return ActivityType(value)
        return value

    @property
    def duration_seconds(self) -> int:
        return int(self.elapsed.total_seconds())

    @property
    def pace_min_per_km(self) -> float:
        """Average pace in minutes per km."""
        if self.distance_km <= 0 or self.duration_seconds <= 0:
            return 0.0
        return (self.duration_seconds / 60) / self.distance_km

    @property
    def avg_speed_kmh(self) -> float:
        """Average speed in km/h."""
        if self.distance_km <= 0 or self.duration_seconds <= 0:
            return 0.0
        return self.distance_km / (self.duration_seconds / 3600.0)

    @property
    def formatted_pace(self) -> str:
        pace = self.pace_min_per_km
        if pace <= 0 or pace > 60:
            return "--:--"
        total_seconds = round(pace * 60)
        minutes, seconds = divmod(total_seconds, 60)
        return f"{minutes:02d}:{seconds:02d}"

    @property
    def formatted_speed(self) -> str:
        speed = self.avg_speed_kmh
        return f"{speed:.1f}" if speed > 0 else "0.0"

    @property
    def formatted_current_speed(self) -> str:
        if self.current_speed_kmh is None or self.current_speed_kmh <= 0:
            return "0.0"
        return f"{self.current_speed_kmh:.1f}"

    @property
    def formatted_duration(self) -> str:
        """HH:MM:SS when over an hour, MM:SS otherwise."""
        hours, rem = divmod(self.duration_seconds, 3600)
        minutes, seconds = divmod(rem, 60)
        if hours > 0:
            return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
        return f"{minutes:02d}:{seconds:02d}"

    @property
    def formatted_distance(self) -> str:
        return f"{self.distance_km:.2f}"

    @property
    def formatted_splits(self) -> list[str]:
        return [f"Km {i}: {format_split(s)}" for i, s in enumerate(self.splits, start=1)]

    @property
    def primary_metric_label(self) -> str:
        return "km/h" if self.activity_type == ActivityType.CYCLING else "/km"

    @property
    def primary_metric_value(self) -> str:
        if self.activity_type == ActivityType.CYCLING:
            return self.formatted_speed
        return self.formatted_pace

    def to_serialized(self) -> dict[str, Any]:
        """Export as the persistence document shape."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "activityType": self.activity_type.value,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "durationSeconds": self.duration_seconds,
            "distanceKm": self.distance_km,
            "routePoints": [p.to_dict() for p in self.route_points],
            "splits": [int(s.total_seconds()) for s in self.splits],
            "heartRate": self.heart_rate,
            "status": self.status.value,
        }

    @classmethod
    def from_serialized(cls, data: dict[str, Any]) -> Session:
        """
        Rebuild a session from a persistence document.

        Accepts both camelCase and snake_case keys.

        Raises:
            ValueError: if required fields are missing or malformed
        """

        def pick(camel: str, snake: str, default: Any = None) -> Any:
            if data.get(camel) is not None:
                return data[camel]
            return data.get(snake, default)

        start_time = pick("startTime", "start_time")
        if "id" not in data or start_time is None:
            raise ValueError("session document requires 'id' and 'startTime'")
        end_time = pick("endTime", "end_time")
        heart_rate = pick("heartRate", "heart_rate")
        try:
            status = SessionStatus(data.get("status") or SessionStatus.IDLE)
        except ValueError:
            status = SessionStatus.IDLE

        return cls.model_validate(
            {
                "id": str(data["id"]),
                "user_id": pick("userId", "user_id", ""),
                "activity_type": pick("activityType", "activity_type", "Running"),
                "start_time": datetime.fromisoformat(start_time),
                "end_time": datetime.fromisoformat(end_time) if end_time else None,
                "elapsed": timedelta(seconds=int(pick("durationSeconds", "duration_seconds", 0))),
                "distance_km": float(pick("distanceKm", "distance_km", 0)),
                "route_points": tuple(
                    Coordinate.from_dict(p) for p in pick("routePoints", "route_points", []) or []
                ),
                "splits": tuple(timedelta(seconds=int(s)) for s in data.get("splits") or []),
                "heart_rate": float(heart_rate) if heart_rate is not None else None,
                "status": status,
            }
        )


class UserAggregateStats(BaseModel):
    """Lifetime totals for a user; only ever incremented."""

    model_config = ConfigDict(frozen=True)

    total_distance_km: float = 0.0
    total_workouts: int = 0
    total_time: timedelta = timedelta(0)

    def add_session(self, session: Session) -> UserAggregateStats:
        """Return new totals including a completed session."""
        return self.add(session.distance_km, session.duration_seconds)

    def add(self, distance_km: float, duration_seconds: int) -> UserAggregateStats:
        return UserAggregateStats(
            total_distance_km=self.total_distance_km + distance_km,
            total_workouts=self.total_workouts + 1,
            total_time=self.total_time + timedelta(seconds=duration_seconds),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalDistanceKm": self.total_distance_km,
            "totalWorkouts": self.total_workouts,
            "totalTimeSeconds": int(self.total_time.total_seconds()),
        }

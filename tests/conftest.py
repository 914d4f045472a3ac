"""Shared pytest fixtures: fake clock, recording store, track helpers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from paceloop.config import TrackerConfig
from paceloop.domain.models import Coordinate, RawSample, Session
from paceloop.infrastructure.database.base import SessionStore

T0 = datetime(2024, 5, 4, 7, 30, 0, tzinfo=UTC)

# Kilometres per degree of longitude on the equator (haversine sphere)
KM_PER_DEGREE = 6371.0 * 3.141592653589793 / 180.0


def east(km: float) -> Coordinate:
    """Point ``km`` east of (0, 0) along the equator."""
    return Coordinate(lat=0.0, lon=km / KM_PER_DEGREE)


def sample_at(lat: float, lon: float, seconds: float, accuracy_m: float = 5.0) -> RawSample:
    return RawSample.at(lat, lon, accuracy_m, T0 + timedelta(seconds=seconds))


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class RecordingStore(SessionStore):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.saved: list[Session] = []
        self.increments: list[tuple[str, float, int, int]] = []

    async def save_session(self, session: Session) -> None:
        if self.fail:
            raise RuntimeError("disk full")
        self.saved.append(session)

    async def increment_user_stats(
        self, user_id: str, distance_km: float, workouts: int, duration_seconds: int
    ) -> None:
        if self.fail:
            raise RuntimeError("disk full")
        self.increments.append((user_id, distance_km, workouts, duration_seconds))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def tracker_config() -> TrackerConfig:
    # Real timer effectively off; tests drive ticks by hand
    return TrackerConfig(tick_interval_s=3600.0, initial_fix_timeout_s=2.0)

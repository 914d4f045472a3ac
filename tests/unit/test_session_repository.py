"""
Session Repository Unit Tests
=============================

Tests for AsyncSessionRepository using pytest-asyncio.
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from paceloop.domain.models import ActivityType, Coordinate, Session, SessionStatus
from paceloop.infrastructure.database import AsyncSessionRepository
from tests.conftest import T0

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def repo(tmp_path):
    """Create a temporary session repository for testing."""
    repository = AsyncSessionRepository(tmp_path / "sessions" / "test.db")
    await repository.init_schema()
    return repository


def completed_session(minutes_after_t0: int = 0, user_id: str = "runner-1", **overrides) -> Session:
    start = T0 + timedelta(minutes=minutes_after_t0)
    fields = dict(
        user_id=user_id,
        activity_type=ActivityType.RUNNING,
        start_time=start,
        end_time=start + timedelta(minutes=25),
        status=SessionStatus.COMPLETED,
        elapsed=timedelta(minutes=24),
        distance_km=4.2,
        route_points=(Coordinate(lat=41.0, lon=29.0), Coordinate(lat=41.01, lon=29.01)),
        splits=(timedelta(seconds=340), timedelta(seconds=338)),
    )
    fields.update(overrides)
    return Session(**fields)


async def test_init_creates_database(tmp_path):
    """Parent directories are created on demand."""
    repository = AsyncSessionRepository(tmp_path / "nested" / "dir" / "db.sqlite")
    await repository.init_schema()
    assert (tmp_path / "nested" / "dir" / "db.sqlite").exists()


async def test_schema_created_on_first_use(tmp_path):
    """Reads and writes work without an explicit init_schema()."""
    repository = AsyncSessionRepository(tmp_path / "lazy.db")
    session = completed_session()

    await repository.save_session(session)
    await repository.increment_user_stats("runner-1", 4.2, 1, 1440)

    assert await repository.get_session(session.id) == session
    assert (await repository.get_user_stats("runner-1")).total_workouts == 1


async def test_save_and_get_session(repo):
    """A saved session reads back unchanged."""
    session = completed_session(heart_rate=148.0)
    await repo.save_session(session)

    loaded = await repo.get_session(session.id)
    assert loaded == session


async def test_get_missing_session(repo):
    assert await repo.get_session("does-not-exist") is None


async def test_save_replaces_by_id(repo):
    session = completed_session()
    await repo.save_session(session)
    await repo.save_session(session.model_copy(update={"distance_km": 5.0}))

    sessions = await repo.get_sessions("runner-1")
    assert len(sessions) == 1
    assert sessions[0].distance_km == 5.0


async def test_get_sessions_newest_first(repo):
    older = completed_session(0)
    newer = completed_session(120)
    other_user = completed_session(60, user_id="runner-2")
    for s in (older, newer, other_user):
        await repo.save_session(s)

    sessions = await repo.get_sessions("runner-1")
    assert [s.id for s in sessions] == [newer.id, older.id]

    limited = await repo.get_sessions("runner-1", limit=1)
    assert [s.id for s in limited] == [newer.id]


async def test_unknown_user_stats_are_zero(repo):
    stats = await repo.get_user_stats("nobody")
    assert stats.total_workouts == 0
    assert stats.total_distance_km == 0.0
    assert stats.total_time == timedelta(0)


async def test_increment_user_stats_accumulates(repo):
    await repo.increment_user_stats("runner-1", 4.2, 1, 1440)
    await repo.increment_user_stats("runner-1", 5.8, 1, 1800)
    await repo.increment_user_stats("runner-2", 1.0, 1, 300)

    stats = await repo.get_user_stats("runner-1")
    assert stats.total_workouts == 2
    assert stats.total_distance_km == pytest.approx(10.0)
    assert stats.total_time == timedelta(seconds=3240)

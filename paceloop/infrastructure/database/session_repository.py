"""
Async Session Repository
========================

Fully async data access layer using aiosqlite.

Usage:
    repo = AsyncSessionRepository("data/paceloop.db")
    await repo.init_schema()

    await repo.save_session(session)
    await repo.increment_user_stats(session.user_id, session.distance_km, 1, 1800)
    stats = await repo.get_user_stats(session.user_id)
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from pathlib import Path

import aiosqlite

from ...domain.models import Session, UserAggregateStats
from .base import SessionStore
from .schema import SESSIONS_SCHEMA

logger = logging.getLogger(__name__)


class AsyncSessionRepository(SessionStore):
    """
    Async repository for completed workout sessions.

    Non-blocking SQLite operations using aiosqlite.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False

    async def init_schema(self) -> None:
        """Initialize database schema. Runs on first use if not called explicitly."""
        async with self._get_connection() as conn:
            await conn.executescript(SESSIONS_SCHEMA)
            await conn.commit()
        self._initialized = True
        logger.info("Session database initialized: %s", self.db_path)

    @asynccontextmanager
    async def _get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Get async database connection with row factory."""
        conn = await aiosqlite.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
        finally:
            await conn.close()

    async def _ensure_schema(self) -> None:
        if not self._initialized:
            await self.init_schema()

    # =========================================================================
    # Sessions
    # =========================================================================

    async def save_session(self, session: Session) -> None:
        """Insert or replace a session by id."""
        await self._ensure_schema()
        doc = session.to_serialized()
        now = datetime.now(UTC).isoformat()

        async with self._get_connection() as conn:
            await conn.execute(
                """
                INSERT OR REPLACE INTO sessions (
                    id, user_id, activity_type, status, start_time, end_time,
                    duration_seconds, distance_km, heart_rate,
                    route_points, splits, saved_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    doc["id"],
                    doc["userId"],
                    doc["activityType"],
                    doc["status"],
                    doc["startTime"],
                    doc["endTime"],
                    doc["durationSeconds"],
                    doc["distanceKm"],
                    doc["heartRate"],
                    json.dumps(doc["routePoints"]),
                    json.dumps(doc["splits"]),
                    now,
                ),
            )
            await conn.commit()
        logger.debug("Saved session %s (%d points)", session.id, len(session.route_points))

    async def get_session(self, session_id: str) -> Session | None:
        """Get one session by id."""
        await self._ensure_schema()
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,))
            row = await cursor.fetchone()
            return self._row_to_session(row) if row else None

    async def get_sessions(self, user_id: str, limit: int = 50) -> list[Session]:
        """Get a user's sessions, newest first."""
        await self._ensure_schema()
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                """
                SELECT * FROM sessions
                WHERE user_id = ?
                ORDER BY start_time DESC
                LIMIT ?
                """,
                (user_id, limit),
            )
            rows = await cursor.fetchall()
            return [self._row_to_session(row) for row in rows]

    @staticmethod
    def _row_to_session(row: aiosqlite.Row) -> Session:
        return Session.from_serialized(
            {
                "id": row["id"],
                "user_id": row["user_id"],
                "activity_type": row["activity_type"],
                "start_time": row["start_time"],
                "end_time": row["end_time"],
                "duration_seconds": row["duration_seconds"],
                "distance_km": row["distance_km"],
                "route_points": json.loads(row["route_points"]),
                "splits": json.loads(row["splits"]),
                "heart_rate": row["heart_rate"],
                "status": row["status"],
            }
        )

    # =========================================================================
    # User Stats
    # =========================================================================

    async def increment_user_stats(
        self,
        user_id: str,
        distance_km: float,
        workouts: int = 1,
        duration_seconds: int = 0,
    ) -> None:
        """Add to a user's lifetime totals, creating the row if needed."""
        await self._ensure_schema()
        now = datetime.now(UTC).isoformat()

        async with self._get_connection() as conn:
            await conn.execute(
                """
                INSERT INTO user_stats (
                    user_id, total_distance_km, total_workouts, total_time_seconds, updated_at
                )
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    total_distance_km = total_distance_km + excluded.total_distance_km,
                    total_workouts = total_workouts + excluded.total_workouts,
                    total_time_seconds = total_time_seconds + excluded.total_time_seconds,
                    updated_at = excluded.updated_at
                """,
                (user_id, distance_km, workouts, duration_seconds, now),
            )
            await conn.commit()

    async def get_user_stats(self, user_id: str) -> UserAggregateStats:
        """Get lifetime totals; zeros for an unknown user."""
        await self._ensure_schema()
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM user_stats WHERE user_id = ?",
                (user_id,),
            )
            row = await cursor.fetchone()

        if row is None:
            return UserAggregateStats()
        return UserAggregateStats(
            total_distance_km=row["total_distance_km"],
            total_workouts=row["total_workouts"],
            total_time=timedelta(seconds=row["total_time_seconds"]),
        )

"""SQLite database schema for workout sessions."""

SESSIONS_SCHEMA = """
-- ============================================
-- PaceLoop Session Database Schema
-- Version: 1.0.0
-- ============================================

-- Completed workouts (one row per session)
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    activity_type TEXT NOT NULL DEFAULT 'Running',
    status TEXT NOT NULL DEFAULT 'completed',

    -- Timestamps (ISO-8601)
    start_time TEXT NOT NULL,
    end_time TEXT,

    -- Metrics
    duration_seconds INTEGER NOT NULL DEFAULT 0,
    distance_km REAL NOT NULL DEFAULT 0,
    heart_rate REAL,

    -- JSON payloads: [{"lat": .., "lng": ..}], [seconds]
    route_points TEXT NOT NULL DEFAULT '[]',
    splits TEXT NOT NULL DEFAULT '[]',

    saved_at TEXT NOT NULL
);

-- Lifetime totals per user (only ever incremented)
CREATE TABLE IF NOT EXISTS user_stats (
    user_id TEXT PRIMARY KEY,
    total_distance_km REAL NOT NULL DEFAULT 0,
    total_workouts INTEGER NOT NULL DEFAULT 0,
    total_time_seconds INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_user_start ON sessions(user_id, start_time);
"""

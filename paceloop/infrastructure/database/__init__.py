"""Database infrastructure - SQLite storage for completed sessions."""

from .base import SessionStore
from .schema import SESSIONS_SCHEMA
from .session_repository import AsyncSessionRepository

__all__ = [
    "SESSIONS_SCHEMA",
    "AsyncSessionRepository",
    "SessionStore",
]

"""Persistence interface consumed by the session tracker on completion."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ...domain.models import Session


class SessionStore(ABC):
    """Receives completed sessions and user aggregate increments."""

    @abstractmethod
    async def save_session(self, session: Session) -> None:
        """Persist a completed session (insert or replace by id)."""

    @abstractmethod
    async def increment_user_stats(
        self,
        user_id: str,
        distance_km: float,
        workouts: int,
        duration_seconds: int,
    ) -> None:
        """Add one session's contribution to the user's lifetime totals."""

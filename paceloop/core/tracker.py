"""
Session Tracker
===============

Owns the workout session state machine:

    IDLE -> ACTIVE <-> PAUSED -> COMPLETED
                 \\-------------> DISCARDED (never persisted)

Position updates (from the PositionFilter) and the 1-second duration tick
both run as plain callbacks on the same asyncio loop, so all session
mutations are serialized without locking. Every mutation replaces the
immutable Session value and publishes it on the tracker's event bus.

Usage:
    tracker = SessionTracker("user-1", PositionFilter(provider), store)
    tracker.subscribe(lambda event: render(event.data))

    await tracker.start(ActivityType.RUNNING)
    ...
    completed = await tracker.stop()
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional

from ..config import TrackerConfig
from ..domain.models import (
    ActivityType,
    Coordinate,
    Session,
    SessionStatus,
    SmoothedPosition,
    whole_seconds,
)
from .events import Handler, SessionEventBus, SessionEventType
from .filter import PositionFilter
from .geo import route_distance_km, speed_kmh

if TYPE_CHECKING:
    from ..infrastructure.database.base import SessionStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class SplitCounter:
    """
    Records one split each time cumulative distance crosses a whole unit.

    By default only one split is added per update even if a GPS gap jumps
    across several boundaries; the count then trails the distance. With
    ``backfill`` the missing boundaries are filled with equal shares of the
    time since the previous boundary.
    """

    unit_km: float = 1.0
    backfill: bool = False
    last_boundary_elapsed: timedelta = field(default=timedelta(0))

    def reset(self) -> None:
        self.last_boundary_elapsed = timedelta(0)

    def evaluate(
        self,
        splits: tuple[timedelta, ...],
        distance_km: float,
        elapsed: timedelta,
    ) -> tuple[timedelta, ...]:
        whole_units = math.floor(distance_km / self.unit_km)
        if whole_units <= len(splits) or elapsed <= timedelta(0):
            return splits

        since_last = elapsed - self.last_boundary_elapsed
        self.last_boundary_elapsed = elapsed

        if not self.backfill:
            return splits + (since_last,)

        crossed = whole_units - len(splits)
        return splits + tuple(since_last / crossed for _ in range(crossed))


class SessionTracker:
    """
    Workout session state machine.

    Invalid transitions are logged no-ops, never exceptions. Only one
    session is in flight per tracker.
    """

    def __init__(
        self,
        user_id: str,
        position_filter: PositionFilter,
        store: SessionStore | None = None,
        config: TrackerConfig | None = None,
        clock: Clock | None = None,
        bus: SessionEventBus | None = None,
    ) -> None:
        self.user_id = user_id
        self.position_filter = position_filter
        self.store = store
        self.config = config or TrackerConfig()
        self.clock = clock or utc_now
        self.events = bus or SessionEventBus()

        self._session: Optional[Session] = None
        self._starting = False
        self._timer: Optional[asyncio.Task] = None
        self._last_tick: Optional[datetime] = None

        self._splits = SplitCounter(
            unit_km=self.config.split_unit_km, backfill=self.config.backfill_splits
        )
        self._speed_anchor: Optional[Coordinate] = None
        self._speed_anchor_time: Optional[datetime] = None
        self._current_speed = 0.0

    # ------------------------------------------------------------------
    # Observer interface
    # ------------------------------------------------------------------

    def subscribe(self, handler: Handler) -> None:
        """Receive every session event (snapshot in ``event.data``)."""
        self.events.subscribe_all(handler)

    def unsubscribe(self, handler: Handler) -> None:
        self.events.unsubscribe_all(handler)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def current_session(self) -> Optional[Session]:
        return self._session

    @property
    def status(self) -> SessionStatus:
        return self._session.status if self._session else SessionStatus.IDLE

    @property
    def is_tracking(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def is_paused(self) -> bool:
        return self.status == SessionStatus.PAUSED

    @property
    def current_speed(self) -> float:
        """Current speed in km/h."""
        return self._current_speed

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start(self, activity_type: ActivityType | str = ActivityType.RUNNING) -> Optional[Session]:
        """
        Begin a new session; a no-op while another one is in flight.

        Waits for one best-effort initial fix to seed the route, then
        returns; further updates arrive through the event bus.
        """
        if self._session is not None or self._starting:
            logger.warning("Activity already in progress")
            return self._session

        self._starting = True
        try:
            activity = ActivityType(activity_type)
            self.position_filter.set_activity_type(activity)
            seed = await self._initial_fix()
        finally:
            self._starting = False

        now = self.clock()
        self._splits.reset()
        self._speed_anchor = seed
        self._speed_anchor_time = now
        self._current_speed = 0.0

        self._session = Session(
            user_id=self.user_id,
            activity_type=activity,
            start_time=now,
            status=SessionStatus.ACTIVE,
            route_points=(seed,) if seed is not None else (),
        )

        self.position_filter.remove_listener(self.handle_position)
        self.position_filter.add_listener(self.handle_position)
        self.position_filter.start()

        self._last_tick = now
        self._timer = asyncio.get_running_loop().create_task(self._run_timer())

        logger.info("Session %s started (%s)", self._session.id, activity.value)
        self.events.publish(SessionEventType.SESSION_STARTED, self._session)
        return self._session

    def pause(self) -> Optional[Session]:
        """Suspend duration accrual and position processing."""
        if self._session is None or self._session.status != SessionStatus.ACTIVE:
            logger.debug("pause() ignored in state %s", self.status.value)
            return self._session

        self._last_tick = None
        self._speed_anchor = None
        self._speed_anchor_time = None
        self._current_speed = 0.0
        self._session = self._session.model_copy(
            update={"status": SessionStatus.PAUSED, "current_speed_kmh": 0.0}
        )

        logger.info("Session %s paused", self._session.id)
        self.events.publish(SessionEventType.SESSION_PAUSED, self._session)
        return self._session

    def resume(self) -> Optional[Session]:
        """Restart the duration clock and re-anchor speed on the last point."""
        if self._session is None or self._session.status != SessionStatus.PAUSED:
            logger.debug("resume() ignored in state %s", self.status.value)
            return self._session

        now = self.clock()
        self._last_tick = now
        if self._session.route_points:
            # The pause gap must not read as one very fast movement
            self._speed_anchor = self._session.route_points[-1]
            self._speed_anchor_time = now
        self._session = self._session.model_copy(update={"status": SessionStatus.ACTIVE})

        logger.info("Session %s resumed", self._session.id)
        self.events.publish(SessionEventType.SESSION_RESUMED, self._session)
        return self._session

    async def stop(self) -> Optional[Session]:
        """
        Complete the session and hand it to the store.

        Store failures are logged; the completed session is returned
        regardless.
        """
        if self._session is None:
            logger.debug("stop() ignored: no session in progress")
            return None

        self._teardown()
        completed = self._session.model_copy(
            update={
                "status": SessionStatus.COMPLETED,
                "end_time": self.clock(),
                "elapsed": whole_seconds(self._session.elapsed),
                "splits": tuple(whole_seconds(s) for s in self._session.splits),
                "current_speed_kmh": None,
            }
        )
        self._clear()

        logger.info(
            "Session %s completed: %.2f km in %s",
            completed.id,
            completed.distance_km,
            completed.formatted_duration,
        )
        self.events.publish(SessionEventType.SESSION_COMPLETED, completed)
        await self._persist(completed)
        return completed

    def discard(self) -> Optional[Session]:
        """Drop the session without persisting it."""
        if self._session is None:
            logger.debug("discard() ignored: no session in progress")
            return None

        self._teardown()
        discarded = self._session.model_copy(
            update={"status": SessionStatus.DISCARDED, "current_speed_kmh": None}
        )
        self._clear()

        logger.info("Session %s discarded", discarded.id)
        self.events.publish(SessionEventType.SESSION_DISCARDED, discarded)
        return discarded

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def handle_position(self, position: SmoothedPosition) -> None:
        """Append a filtered position and recompute distance, speed and splits."""
        session = self._session
        if session is None or session.status != SessionStatus.ACTIVE:
            return

        now = self.clock()
        point = position.coordinate
        points = session.route_points + (point,)
        # Full recompute on purpose: an incremental sum compounds jitter error
        total = route_distance_km(points, self.config.min_segment_km)

        if self._speed_anchor is not None and self._speed_anchor_time is not None:
            delta = now - self._speed_anchor_time
            if delta.total_seconds() >= self.config.speed_window_s:
                self._current_speed = speed_kmh(self._speed_anchor, point, delta)
                self._speed_anchor = point
                self._speed_anchor_time = now
        else:
            self._speed_anchor = point
            self._speed_anchor_time = now

        splits = self._splits.evaluate(session.splits, total, session.elapsed)

        self._session = session.model_copy(
            update={
                "route_points": points,
                "distance_km": total,
                "splits": splits,
                "current_speed_kmh": self._current_speed,
            }
        )

        if len(splits) > len(session.splits):
            logger.info("New split: Km %d in %s", len(splits), self._session.formatted_splits[-1])
            self.events.publish(SessionEventType.SPLIT_RECORDED, self._session)
        self.events.publish(SessionEventType.SESSION_UPDATED, self._session)

    def handle_tick(self) -> None:
        """Add wall-clock time since the previous tick while active."""
        session = self._session
        if session is None or session.status != SessionStatus.ACTIVE:
            return

        now = self.clock()
        if self._last_tick is not None:
            self._session = session.model_copy(
                update={"elapsed": session.elapsed + (now - self._last_tick)}
            )
            self.events.publish(SessionEventType.SESSION_UPDATED, self._session)
        self._last_tick = now

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _initial_fix(self) -> Optional[Coordinate]:
        provider = self.position_filter.provider
        if provider is None:
            return None

        timeout = self.config.initial_fix_timeout_s
        try:
            if not await provider.request_permission():
                logger.warning("No location permission; starting with empty route")
                return None
            fix = await asyncio.wait_for(provider.get_current_fix(timeout), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Initial fix timed out after %.1fs", timeout)
            return None
        except Exception as e:
            logger.warning("Error getting current position: %s", e)
            return None

        if fix is None:
            logger.warning("Could not get initial position")
        return fix

    async def _run_timer(self) -> None:
        interval = self.config.tick_interval_s
        while True:
            await asyncio.sleep(interval)
            self.handle_tick()

    def _teardown(self) -> None:
        # Synchronous: nothing else runs on the loop until this returns
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.position_filter.remove_listener(self.handle_position)
        self.position_filter.stop()
        self._last_tick = None

    def _clear(self) -> None:
        self._session = None
        self._current_speed = 0.0
        self._speed_anchor = None
        self._speed_anchor_time = None
        self._splits.reset()

    async def _persist(self, session: Session) -> None:
        if self.store is None:
            logger.debug("No session store configured; %s not saved", session.id)
            return

        try:
            await self.store.save_session(session)
        except Exception as e:
            logger.error("Failed to save session %s: %s", session.id, e)

        try:
            await self.store.increment_user_stats(
                session.user_id, session.distance_km, 1, session.duration_seconds
            )
        except Exception as e:
            logger.error("Failed to update stats for %s: %s", session.user_id, e)

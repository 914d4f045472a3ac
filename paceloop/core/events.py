"""
PaceLoop Session Events - In-process Pub/Sub for session snapshots
==================================================================

Each SessionTracker owns its own bus; there is no process-wide instance.

Features:
- Sync handlers run inline, coroutine handlers are scheduled on the loop
- Priority-based handlers
- One-time handlers
- Event history for debugging
- Error isolation per handler

Usage:
    bus = SessionEventBus()

    @bus.on(SessionEventType.SPLIT_RECORDED)
    def handle_split(event: Event):
        print(f"Split: {event.data.splits[-1]}")

    bus.publish(SessionEventType.SESSION_UPDATED, data=session)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Awaitable, Callable, TypeAlias

logger = logging.getLogger(__name__)

Handler: TypeAlias = Callable[["Event"], "None | Awaitable[None]"]


class SessionEventType(Enum):
    """All session lifecycle and snapshot events."""

    SESSION_STARTED = auto()
    SESSION_UPDATED = auto()
    SESSION_PAUSED = auto()
    SESSION_RESUMED = auto()
    SESSION_COMPLETED = auto()
    SESSION_DISCARDED = auto()
    SPLIT_RECORDED = auto()


@dataclass(frozen=True)
class Event:
    """Immutable event with metadata."""

    type: SessionEventType
    data: Any = None
    timestamp: float = field(default_factory=time.time)
    source: str = "tracker"
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])


@dataclass
class HandlerInfo:
    """Handler registration info."""

    handler: Handler
    priority: int = 100  # Lower = higher priority
    once: bool = False  # Remove after first call


class SessionEventBus:
    """
    Synchronous-dispatch event bus with pub/sub pattern.

    Publishing never raises: a failing handler is logged and counted, the
    remaining handlers still run.
    """

    def __init__(self, max_history: int = 200) -> None:
        self._handlers: dict[SessionEventType, list[HandlerInfo]] = {}
        self._history: list[Event] = []
        self._max_history = max_history
        self._pending: set[asyncio.Task] = set()
        self._stats = {
            "events_published": 0,
            "events_processed": 0,
            "handler_errors": 0,
        }

    def subscribe(
        self,
        event_type: SessionEventType,
        handler: Handler,
        priority: int = 100,
        once: bool = False,
    ) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: Event to listen for
            handler: Plain callable or coroutine function
            priority: Lower = called first (default 100)
            once: Remove handler after first call
        """
        handlers = self._handlers.setdefault(event_type, [])
        handlers.append(HandlerInfo(handler=handler, priority=priority, once=once))
        handlers.sort(key=lambda h: h.priority)

        logger.debug(
            "Subscribed to %s: %s (priority=%d)",
            event_type.name,
            getattr(handler, "__name__", repr(handler)),
            priority,
        )

    def subscribe_all(self, handler: Handler, priority: int = 100) -> None:
        """Subscribe one handler to every event type (snapshot listeners)."""
        for event_type in SessionEventType:
            self.subscribe(event_type, handler, priority)

    def unsubscribe(self, event_type: SessionEventType, handler: Handler) -> bool:
        """Remove a handler. Returns True if found."""
        for i, info in enumerate(self._handlers.get(event_type, [])):
            if info.handler == handler:
                del self._handlers[event_type][i]
                return True
        return False

    def unsubscribe_all(self, handler: Handler) -> int:
        """Remove a handler from every event type. Returns removal count."""
        return sum(self.unsubscribe(t, handler) for t in SessionEventType)

    def on(
        self, event_type: SessionEventType, priority: int = 100, once: bool = False
    ) -> Callable[[Handler], Handler]:
        """
        Decorator for subscribing to events.

        Usage:
            @bus.on(SessionEventType.SESSION_COMPLETED)
            async def handle_done(event: Event):
                print(event.data)
        """
        def decorator(handler: Handler) -> Handler:
            self.subscribe(event_type, handler, priority, once)
            return handler
        return decorator

    def publish(
        self,
        event_type: SessionEventType,
        data: Any = None,
        source: str = "tracker",
    ) -> Event:
        """Create an event and dispatch it to all handlers. Returns the Event."""
        event = Event(type=event_type, data=data, source=source)
        self._stats["events_published"] += 1
        self._dispatch(event)
        return event

    def _dispatch(self, event: Event) -> None:
        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

        handlers = self._handlers.get(event.type, [])
        if not handlers:
            return

        to_remove: list[HandlerInfo] = []

        # Copy: handlers may unsubscribe themselves while running
        for info in list(handlers):
            try:
                result = info.handler(event)
                if inspect.isawaitable(result):
                    self._schedule(result, event, info)
                self._stats["events_processed"] += 1

                if info.once:
                    to_remove.append(info)

            except Exception as e:
                logger.error(
                    "Handler error for %s: %s - %s",
                    event.type.name,
                    getattr(info.handler, "__name__", repr(info.handler)),
                    e,
                )
                self._stats["handler_errors"] += 1

        for info in to_remove:
            if info in self._handlers[event.type]:
                self._handlers[event.type].remove(info)

    def _schedule(self, awaitable: Awaitable[None], event: Event, info: HandlerInfo) -> None:
        try:
            loop = asyncio.get_running_loop()
            task = asyncio.ensure_future(awaitable, loop=loop)
        except RuntimeError:
            # No running loop to host the coroutine
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning(
                "Dropped async handler %s for %s: no running event loop",
                getattr(info.handler, "__name__", repr(info.handler)),
                event.type.name,
            )
            return

        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_task_done(t, event))

    def _on_task_done(self, task: asyncio.Task, event: Event) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async handler error for %s: %s", event.type.name, exc)
            self._stats["handler_errors"] += 1

    async def drain(self) -> None:
        """Wait for scheduled async handlers to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def get_history(
        self,
        event_type: SessionEventType | None = None,
        limit: int = 100,
    ) -> list[Event]:
        """Get recent events, optionally filtered by type."""
        events = self._history
        if event_type:
            events = [e for e in events if e.type == event_type]
        return events[-limit:]

    def get_stats(self) -> dict:
        """Get event bus statistics."""
        return {
            **self._stats,
            "pending_tasks": len(self._pending),
            "handler_count": sum(len(h) for h in self._handlers.values()),
            "history_size": len(self._history),
        }

    def clear_history(self) -> None:
        """Clear event history."""
        self._history.clear()

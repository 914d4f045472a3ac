"""Location provider interface shared by gpsd and replay sources."""

from __future__ import annotations

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Optional

from ...domain.models import Coordinate, RawSample

logger = logging.getLogger(__name__)

SampleCallback = Callable[[RawSample], None]
ErrorCallback = Callable[[Exception], None]

_handle_ids = itertools.count(1)


@dataclass(eq=False)
class SubscriptionHandle:
    """Open subscription on a provider; pass back to ``unsubscribe``."""

    id: int = field(default_factory=lambda: next(_handle_ids))
    task: Optional[asyncio.Task] = None
    active: bool = True


class LocationProvider(ABC):
    """
    Source of raw location samples.

    Subclasses implement ``request_permission``, ``get_current_fix`` and
    ``stream_samples``; subscription bookkeeping lives here. Every sample
    must carry an accuracy figure in meters.
    """

    retry_delay: float = 1.0

    def __init__(self) -> None:
        self._subscriptions: dict[int, SubscriptionHandle] = {}

    @abstractmethod
    async def request_permission(self) -> bool:
        """Return True if location data may be read."""

    @abstractmethod
    async def get_current_fix(self, timeout: float) -> Optional[Coordinate]:
        """Resolve one high-accuracy fix, or None within ``timeout`` seconds."""

    @abstractmethod
    def stream_samples(self) -> AsyncIterator[RawSample]:
        """Async generator of raw samples, in arrival order."""

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> SubscriptionHandle:
        """
        Start delivering samples to ``on_sample`` on the running loop.

        Stream failures are reported through ``on_error`` and the stream is
        reopened; they never end the subscription.
        """
        handle = SubscriptionHandle()
        handle.task = asyncio.get_running_loop().create_task(
            self._pump(handle, on_sample, on_error)
        )
        self._subscriptions[handle.id] = handle
        logger.debug("Location subscription %d opened", handle.id)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Stop delivery immediately; no callback runs after this returns."""
        handle.active = False
        if handle.task is not None and not handle.task.done():
            handle.task.cancel()
        if self._subscriptions.pop(handle.id, None) is not None:
            logger.debug("Location subscription %d closed", handle.id)

    async def _pump(
        self,
        handle: SubscriptionHandle,
        on_sample: SampleCallback,
        on_error: ErrorCallback,
    ) -> None:
        try:
            while handle.active:
                try:
                    async for sample in self.stream_samples():
                        if not handle.active:
                            return
                        try:
                            on_sample(sample)
                        except Exception as e:
                            logger.error("Location callback error: %s", e)
                    # Finite source exhausted
                    return
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    if handle.active:
                        on_error(e)
                        await asyncio.sleep(self.retry_delay)
        finally:
            self._subscriptions.pop(handle.id, None)

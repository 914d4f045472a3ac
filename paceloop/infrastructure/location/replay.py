"""
Replay location provider for testing and simulation.

Plays back a prepared list of samples, optionally paced in real time.
``circle_walk`` builds a synthetic track for mock mode.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import AsyncIterator, Optional

from ...core.geo import meters_to_degrees
from ...domain.models import Coordinate, RawSample
from .base import LocationProvider

logger = logging.getLogger(__name__)


def circle_walk(
    start_lat: float,
    start_lon: float,
    speed_mps: float = 3.0,
    count: int = 60,
    radius_m: float = 100.0,
    accuracy_m: float = 5.0,
    step_s: float = 1.0,
    start_time: datetime | None = None,
) -> list[RawSample]:
    """Generate ``count`` samples walking a circle at constant speed."""
    start_time = start_time or datetime.now(UTC)
    step_angle = speed_mps * step_s / radius_m

    samples = []
    for i in range(count):
        angle = i * step_angle
        lat = start_lat + meters_to_degrees(radius_m * math.sin(angle))
        lon = start_lon + meters_to_degrees(radius_m * math.cos(angle), start_lat)
        samples.append(
            RawSample.at(lat, lon, accuracy_m, start_time + timedelta(seconds=i * step_s))
        )
    return samples


class ReplayLocationProvider(LocationProvider):
    """
    Provider that replays prepared samples.

    Args:
        samples: Samples to deliver, in order
        interval_s: Delay between samples (0 = as fast as the loop allows)
        initial_fix: Answer for ``get_current_fix`` (defaults to first sample)
        permission: Result of ``request_permission``
        restamp: Replace sample timestamps with the delivery time
    """

    def __init__(
        self,
        samples: Iterable[RawSample] = (),
        interval_s: float = 0.0,
        initial_fix: Coordinate | None = None,
        permission: bool = True,
        restamp: bool = False,
    ) -> None:
        super().__init__()
        self._samples = list(samples)
        self.interval_s = interval_s
        self.initial_fix = initial_fix
        self.permission = permission
        self.restamp = restamp
        self.delivered = 0

    async def request_permission(self) -> bool:
        return self.permission

    async def get_current_fix(self, timeout: float = 15.0) -> Optional[Coordinate]:
        if not self.permission:
            logger.info("Replay provider: permission denied, no initial fix")
            return None
        if self.initial_fix is not None:
            return self.initial_fix
        return self._samples[0].coordinate if self._samples else None

    async def stream_samples(self) -> AsyncIterator[RawSample]:
        if not self.permission:
            return
        for sample in self._samples:
            if self.interval_s > 0:
                await asyncio.sleep(self.interval_s)
            else:
                await asyncio.sleep(0)
            if self.restamp:
                sample = sample.model_copy(update={"timestamp": datetime.now(UTC)})
            self.delivered += 1
            yield sample

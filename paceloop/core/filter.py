"""
Position Filter
===============

Turns a noisy stream of raw location samples into positions that are safe
to accumulate into a route.

Per sample:
1. Accuracy gate - drop readings worse than ``min_accuracy_m``
2. Smoothing - independent 1D Kalman estimator per axis
3. Plausibility gate - drop micro-jitter and impossible speeds
4. Warm-up gate - the first accepted samples seed state but are not emitted

Rejections are silent (DEBUG log only); a bad sample never raises.

Usage:
    pf = PositionFilter(provider, FilterConfig())
    pf.add_listener(lambda pos: print(pos.coordinate))
    pf.set_activity_type(ActivityType.RUNNING)
    pf.start()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from ..config import FilterConfig
from ..domain.models import ActivityType, Coordinate, RawSample, SmoothedPosition
from .geo import distance_m, meters_to_degrees

if TYPE_CHECKING:
    from ..infrastructure.location.base import LocationProvider, SubscriptionHandle

logger = logging.getLogger(__name__)

PositionListener = Callable[[SmoothedPosition], None]


@dataclass
class AxisFilter:
    """Recursive linear estimator for a single axis (predict, then correct)."""

    estimate: float
    estimate_error: float = 1.0
    measurement_error: float = 1.0
    process_noise: float = 0.01

    def update(self, measurement: float, measurement_error: float | None = None) -> float:
        if measurement_error is not None:
            self.measurement_error = measurement_error

        # Predict
        self.estimate_error += self.process_noise

        # Correct
        denominator = self.estimate_error + self.measurement_error
        gain = self.estimate_error / denominator if denominator > 0 else 1.0
        self.estimate += gain * (measurement - self.estimate)
        self.estimate_error = (1 - gain) * self.estimate_error

        return self.estimate

    def reset(self, value: float, estimate_error: float = 1.0) -> None:
        self.estimate = value
        self.estimate_error = estimate_error


class FilterPhase(str, Enum):
    IDLE = "idle"
    WARMING_UP = "warming_up"
    ACTIVE = "active"


class PositionFilter:
    """
    Stateful GPS sample filter for one tracking session at a time.

    Owns the provider subscription between ``start()`` and ``stop()``.
    Smoothed positions are pushed to registered listeners.
    """

    def __init__(
        self,
        provider: LocationProvider | None = None,
        config: FilterConfig | None = None,
        activity_type: ActivityType = ActivityType.RUNNING,
    ) -> None:
        self.provider = provider
        self.config = config or FilterConfig()
        self._activity_type = activity_type
        self._listeners: list[PositionListener] = []
        self._subscription: Optional[SubscriptionHandle] = None
        self._started = False

        self._lat_filter: Optional[AxisFilter] = None
        self._lon_filter: Optional[AxisFilter] = None
        self._accepted = 0
        self._last_valid: Optional[Coordinate] = None
        self._last_valid_time: Optional[datetime] = None
        self._last_raw: Optional[Coordinate] = None
        self._last_accuracy: Optional[float] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def phase(self) -> FilterPhase:
        if not self._started:
            return FilterPhase.IDLE
        if self._accepted < self.config.warmup_samples:
            return FilterPhase.WARMING_UP
        return FilterPhase.ACTIVE

    @property
    def activity_type(self) -> ActivityType:
        return self._activity_type

    @property
    def max_allowed_speed_mps(self) -> float:
        return self.config.max_speed_mps.for_activity(self._activity_type)

    @property
    def accepted_count(self) -> int:
        return self._accepted

    @property
    def last_position(self) -> Optional[Coordinate]:
        """Last valid position, falling back to the last raw reading."""
        return self._last_valid or self._last_raw

    @property
    def last_valid_position(self) -> Optional[Coordinate]:
        return self._last_valid

    @property
    def last_accuracy(self) -> Optional[float]:
        return self._last_accuracy

    @property
    def axis_filters(self) -> tuple[Optional[AxisFilter], Optional[AxisFilter]]:
        return self._lat_filter, self._lon_filter

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: PositionListener) -> None:
        """Register callback for smoothed positions."""
        self._listeners.append(listener)

    def remove_listener(self, listener: PositionListener) -> None:
        """Remove position callback."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def set_activity_type(self, activity_type: ActivityType | str) -> None:
        """Select the speed threshold; unknown names use the most permissive one."""
        self._activity_type = ActivityType(activity_type)
        logger.debug(
            "Filter activity type %s (max %.1f m/s)",
            self._activity_type.value,
            self.max_allowed_speed_mps,
        )

    def start(self) -> None:
        """Reset state and subscribe to the provider (needs a running loop)."""
        if self._subscription is not None:
            self._release_subscription()
        self._reset_state()
        self._started = True

        if self.provider is not None:
            self._subscription = self.provider.subscribe(self.process, self._on_error)
        logger.info("Position filter started (%s)", self._activity_type.value)

    def stop(self) -> None:
        """Release the provider subscription and drop all filter state."""
        self._release_subscription()
        self._started = False
        self._reset_state()
        logger.info("Position filter stopped")

    def _release_subscription(self) -> None:
        if self._subscription is not None and self.provider is not None:
            self.provider.unsubscribe(self._subscription)
        self._subscription = None

    def _reset_state(self) -> None:
        self._accepted = 0
        self._last_valid = None
        self._last_valid_time = None
        self._lat_filter = None
        self._lon_filter = None

    def _on_error(self, error: Exception) -> None:
        # The OS stream is expected to recover on its own
        logger.warning("Location stream error: %s", error)

    # ------------------------------------------------------------------
    # Sample processing
    # ------------------------------------------------------------------

    def process(self, sample: RawSample) -> Optional[SmoothedPosition]:
        """
        Run one raw sample through the gates.

        Returns:
            The emitted SmoothedPosition, or None if the sample was
            rejected or consumed by warm-up.
        """
        if not self._started:
            logger.debug("GPS: Ignoring sample while filter is idle")
            return None

        cfg = self.config
        lat = sample.coordinate.lat
        lon = sample.coordinate.lon
        self._last_raw = sample.coordinate
        self._last_accuracy = sample.accuracy_m

        if sample.accuracy_m > cfg.min_accuracy_m:
            logger.debug("GPS: Skipping low accuracy reading (%.1fm)", sample.accuracy_m)
            return None

        lat_error = meters_to_degrees(sample.accuracy_m)
        lon_error = meters_to_degrees(sample.accuracy_m, lat)

        if self._lat_filter is None or self._lon_filter is None:
            self._lat_filter = AxisFilter(
                estimate=lat,
                estimate_error=cfg.initial_error,
                measurement_error=lat_error,
                process_noise=cfg.process_noise,
            )
            self._lon_filter = AxisFilter(
                estimate=lon,
                estimate_error=cfg.initial_error,
                measurement_error=lon_error,
                process_noise=cfg.process_noise,
            )

        smoothed = Coordinate(
            lat=self._lat_filter.update(lat, lat_error),
            lon=self._lon_filter.update(lon, lon_error),
        )

        if self._last_valid is not None and self._last_valid_time is not None:
            time_delta = (sample.timestamp - self._last_valid_time).total_seconds()
            distance = distance_m(self._last_valid, smoothed)

            if distance < cfg.min_movement_m and sample.accuracy_m > cfg.good_accuracy_m:
                logger.debug("GPS: Skipping micro-movement (%.2fm)", distance)
                return None

            if time_delta <= 0:
                implausible = distance >= cfg.min_movement_m
                if implausible:
                    logger.debug(
                        "GPS: Skipping %.1fm jump with non-increasing timestamp (%.1fs)",
                        distance,
                        time_delta,
                    )
            else:
                speed = distance / time_delta
                implausible = speed > self.max_allowed_speed_mps
                if implausible:
                    logger.debug("GPS: Skipping impossible speed (%.1f km/h)", speed * 3.6)

            if implausible:
                # One bad fix must not drag the estimate off course
                self._lat_filter.reset(lat, cfg.initial_error)
                self._lon_filter.reset(lon, cfg.initial_error)
                return None

        self._accepted += 1
        self._last_valid = smoothed
        if self._last_valid_time is None or sample.timestamp > self._last_valid_time:
            self._last_valid_time = sample.timestamp

        if self._accepted <= cfg.warmup_samples:
            logger.debug("GPS: Warmup position %d/%d", self._accepted, cfg.warmup_samples)
            return None

        position = SmoothedPosition(coordinate=smoothed, timestamp=sample.timestamp)
        logger.debug(
            "GPS: Valid update (%.6f, %.6f) accuracy: %.1fm",
            smoothed.lat,
            smoothed.lon,
            sample.accuracy_m,
        )
        for listener in list(self._listeners):
            try:
                listener(position)
            except Exception as e:
                logger.error("Position listener error: %s", e)
        return position

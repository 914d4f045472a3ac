"""Location infrastructure - provider interface, gpsd client and replay source."""

from .base import LocationProvider, SubscriptionHandle
from .gpsd import GpsdLocationProvider
from .replay import ReplayLocationProvider, circle_walk

__all__ = [
    "GpsdLocationProvider",
    "LocationProvider",
    "ReplayLocationProvider",
    "SubscriptionHandle",
    "circle_walk",
]

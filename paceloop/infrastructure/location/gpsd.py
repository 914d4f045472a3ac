"""Async gpsd location provider with auto-reconnect and graceful degradation."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import aclosing
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import AsyncIterator, Optional

from ...config import GPSConfig
from ...domain.models import Coordinate, RawSample
from .base import LocationProvider

logger = logging.getLogger(__name__)

# Used when gpsd reports neither an error estimate nor HDOP
ASSUMED_ACCURACY_M = 50.0


@dataclass
class GPSState:
    """Internal GPS state tracking."""

    connected: bool = False
    fix_count: int = 0
    error_count: int = 0
    last_fix: Optional[datetime] = None
    satellites: int = 0
    hdop: Optional[float] = None


class GpsdLocationProvider(LocationProvider):
    """
    Location provider backed by a gpsd daemon.

    Features:
    - Non-blocking async connection
    - Automatic reconnection on disconnect
    - Accuracy from TPV error estimates (eph, epx/epy) or SKY hdop
    - Graceful degradation when GPS unavailable

    Usage:
        provider = GpsdLocationProvider(GPSConfig())

        async for sample in provider.stream_samples():
            print(sample.coordinate, sample.accuracy_m)
    """

    def __init__(self, config: GPSConfig | None = None) -> None:
        super().__init__()
        self.config = config or GPSConfig()
        self.retry_delay = self.config.reconnect_delay
        self._state = GPSState()

    @property
    def state(self) -> GPSState:
        """Get internal state for diagnostics."""
        return self._state

    async def _open(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter] | None:
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.config.host, self.config.port),
                timeout=self.config.timeout,
            )

            # Enable JSON streaming mode
            writer.write(b'?WATCH={"enable":true,"json":true}\n')
            await writer.drain()

            self._state.connected = True
            logger.info("Connected to gpsd at %s:%d", self.config.host, self.config.port)
            return reader, writer

        except asyncio.TimeoutError:
            logger.warning("GPS connection timeout to %s:%d", self.config.host, self.config.port)
        except ConnectionRefusedError:
            logger.warning("GPS connection refused - is gpsd running?")
        except OSError as e:
            logger.warning("GPS connection failed: %s", e)

        self._state.error_count += 1
        return None

    async def _close(self, writer: asyncio.StreamWriter) -> None:
        try:
            writer.write(b'?WATCH={"enable":false}\n')
            await writer.drain()
            writer.close()
            await writer.wait_closed()
        except OSError as e:
            logger.debug("GPS disconnect error: %s", e)
        self._state.connected = False

    async def request_permission(self) -> bool:
        """gpsd has no permission model; reachable means allowed."""
        conn = await self._open()
        if conn is None:
            return False
        await self._close(conn[1])
        return True

    async def stream_samples(self) -> AsyncIterator[RawSample]:
        """
        Async generator that yields raw samples.

        Handles reconnection automatically. Raises ConnectionError when the
        daemon closes the stream so the subscriber can report it.
        """
        while True:
            conn = await self._open()
            if conn is None:
                await asyncio.sleep(self.config.reconnect_delay)
                continue

            reader, writer = conn
            try:
                while True:
                    try:
                        line = await asyncio.wait_for(
                            reader.readline(), timeout=self.config.timeout
                        )
                    except asyncio.TimeoutError:
                        # Timeout is OK - just means no new data
                        logger.debug("GPS read timeout, connection still alive")
                        continue

                    if not line:
                        raise ConnectionError("GPS connection closed by server")

                    try:
                        data = json.loads(line.decode("utf-8"))
                    except (json.JSONDecodeError, UnicodeDecodeError) as e:
                        logger.warning("GPS JSON parse error: %s", e)
                        continue

                    if data.get("class") == "TPV":
                        sample = self.parse_tpv(data)
                        if sample is not None:
                            self._state.fix_count += 1
                            self._state.last_fix = sample.timestamp
                            yield sample

                    elif data.get("class") == "SKY":
                        self._state.satellites = len(data.get("satellites", []))
                        hdop = data.get("hdop")
                        self._state.hdop = float(hdop) if hdop is not None else None
            finally:
                await self._close(writer)

    def parse_tpv(self, data: dict) -> Optional[RawSample]:
        """
        Parse TPV (Time-Position-Velocity) message from gpsd.

        Args:
            data: JSON dict from gpsd TPV message

        Returns:
            RawSample stamped with arrival time, None without a 2D/3D fix
        """
        try:
            if "lat" not in data or "lon" not in data:
                return None

            # Mode: 0=unknown, 1=no fix, 2=2D, 3=3D
            if data.get("mode", 0) < 2:
                return None

            return RawSample(
                coordinate=Coordinate(lat=float(data["lat"]), lon=float(data["lon"])),
                accuracy_m=self._accuracy_from(data),
                timestamp=datetime.now(UTC),
            )

        except (KeyError, ValueError, TypeError) as e:
            logger.error("TPV parse error: %s - data: %s", e, data)
            return None

    def _accuracy_from(self, data: dict) -> float:
        if data.get("eph") is not None:
            return float(data["eph"])
        errors = [float(data[k]) for k in ("epx", "epy") if data.get(k) is not None]
        if errors:
            return max(errors)
        if self._state.hdop is not None:
            return self._state.hdop * 5.0  # Rough estimate
        return ASSUMED_ACCURACY_M

    async def get_current_fix(self, timeout: float = 15.0) -> Optional[Coordinate]:
        """
        Get a single GPS fix on a dedicated connection.

        Args:
            timeout: Max time to wait for fix

        Returns:
            Coordinate of the first fix within ``fix_max_accuracy_m``,
            None otherwise
        """
        try:
            async with asyncio.timeout(timeout):
                async with aclosing(self.stream_samples()) as stream:
                    async for sample in stream:
                        if sample.accuracy_m > self.config.fix_max_accuracy_m:
                            logger.debug("GPS: Waiting for a better fix (%.1fm)", sample.accuracy_m)
                            continue
                        return sample.coordinate
        except asyncio.TimeoutError:
            logger.warning("GPS single position timeout after %.1fs", timeout)
        return None

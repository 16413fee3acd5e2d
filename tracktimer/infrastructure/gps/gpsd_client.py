"""Async gpsd client with auto-reconnect and graceful degradation."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Callable, Optional

from ...domain.models import GeoPoint, LocationSample

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class GPSConfig:
    """GPS daemon connection configuration."""

    host: str = "localhost"
    port: int = 2947
    reconnect_delay: float = 5.0
    timeout: float = 10.0
    max_reconnect_attempts: int = 0  # 0 = infinite
    min_interval_ms: int = 500


@dataclass
class GPSState:
    """Internal GPS state tracking."""

    connected: bool = False
    fix_count: int = 0
    error_count: int = 0
    throttled_count: int = 0
    last_fix_ms: Optional[int] = None


class AsyncGPSClient:
    """
    Async gpsd client with auto-reconnect.

    Features:
    - Non-blocking async connection
    - Automatic reconnection on disconnect
    - Callback-based sample updates
    - Fixes closer together than ``min_interval_ms`` are dropped
    - A silent receiver is treated as "no new samples", never as an error

    Usage:
        client = AsyncGPSClient()

        async for sample in client.stream_samples():
            print(f"Lat: {sample.point.latitude}, Lon: {sample.point.longitude}")
    """

    def __init__(self, config: GPSConfig | None = None) -> None:
        self.config = config or GPSConfig()
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._running = False
        self._sample: Optional[LocationSample] = None
        self._callbacks: list[Callable[[LocationSample], None]] = []
        self._state = GPSState()
        self._reconnect_attempts = 0

    @property
    def last_sample(self) -> Optional[LocationSample]:
        """Get last delivered sample."""
        return self._sample

    @property
    def is_connected(self) -> bool:
        """Check if connected to gpsd."""
        return self._state.connected

    @property
    def state(self) -> GPSState:
        """Get internal state for diagnostics."""
        return self._state

    def on_sample(self, callback: Callable[[LocationSample], None]) -> None:
        """Register callback for sample updates."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[LocationSample], None]) -> None:
        """Remove sample callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def connect(self) -> bool:
        """
        Connect to gpsd daemon.

        Returns:
            True if connected successfully, False otherwise.
        """
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.config.host, self.config.port),
                timeout=self.config.timeout,
            )

            # Enable JSON streaming mode
            self._writer.write(b'?WATCH={"enable":true,"json":true}\n')
            await self._writer.drain()

            self._state.connected = True
            self._reconnect_attempts = 0
            logger.info("Connected to gpsd at %s:%d", self.config.host, self.config.port)
            return True

        except asyncio.TimeoutError:
            logger.warning("GPS connection timeout to %s:%d", self.config.host, self.config.port)
            self._state.error_count += 1
            return False

        except ConnectionRefusedError:
            logger.warning("GPS connection refused - is gpsd running?")
            self._state.error_count += 1
            return False

        except OSError as e:
            logger.warning("GPS connection failed: %s", e)
            self._state.error_count += 1
            return False

    async def disconnect(self) -> None:
        """Disconnect from gpsd gracefully."""
        if self._writer:
            try:
                self._writer.write(b'?WATCH={"enable":false}\n')
                await self._writer.drain()
                self._writer.close()
                await self._writer.wait_closed()
            except OSError as e:
                logger.debug("GPS disconnect error ignored: %s", e)

        self._reader = None
        self._writer = None
        self._state.connected = False

    async def stream_samples(self) -> AsyncIterator[LocationSample]:
        """
        Async generator that yields location samples.

        Handles reconnection automatically. Yields samples as they arrive.
        Never raises - logs errors and retries until stopped.
        """
        self._running = True

        while self._running:
            # Connect if needed
            if not self._reader:
                if not await self.connect():
                    self._reconnect_attempts += 1

                    if (
                        self.config.max_reconnect_attempts > 0
                        and self._reconnect_attempts >= self.config.max_reconnect_attempts
                    ):
                        logger.error("GPS max reconnect attempts reached, stopping")
                        break

                    await asyncio.sleep(self.config.reconnect_delay)
                    continue

            try:
                line = await asyncio.wait_for(
                    self._reader.readline(),  # type: ignore[union-attr]
                    timeout=self.config.timeout,
                )

                if not line:
                    raise ConnectionError("GPS connection closed by server")

                data = json.loads(line.decode("utf-8"))

                # TPV = Time-Position-Velocity
                if data.get("class") == "TPV":
                    sample = self._parse_tpv(data)
                    if sample and self._accept(sample):
                        self._publish(sample)
                        yield sample

            except asyncio.TimeoutError:
                # No fix within the timeout is not an error
                logger.debug("GPS read timeout, connection still alive")

            except json.JSONDecodeError as e:
                logger.warning("GPS JSON parse error: %s", e)

            except (ConnectionError, OSError) as e:
                logger.warning("GPS stream error: %s, reconnecting...", e)
                self._state.error_count += 1
                await self.disconnect()
                await asyncio.sleep(self.config.reconnect_delay)

    def _accept(self, sample: LocationSample) -> bool:
        # Backwards fixes pass through; the session rejects them as out of order
        last = self._sample
        if last is None:
            return True
        delta = sample.timestamp_ms - last.timestamp_ms
        if 0 <= delta < self.config.min_interval_ms:
            self._state.throttled_count += 1
            return False
        return True

    def _publish(self, sample: LocationSample) -> None:
        self._sample = sample
        self._state.fix_count += 1
        self._state.last_fix_ms = sample.timestamp_ms

        for cb in self._callbacks:
            try:
                cb(sample)
            except Exception as e:
                logger.error("GPS callback error: %s", e)

    def _parse_tpv(self, data: dict) -> Optional[LocationSample]:
        """
        Parse TPV (Time-Position-Velocity) message from gpsd.

        Args:
            data: JSON dict from gpsd TPV message

        Returns:
            LocationSample if a 2D/3D fix with lat/lon is present, None otherwise
        """
        try:
            if "lat" not in data or "lon" not in data:
                return None

            # Mode: 0=unknown, 1=no fix, 2=2D, 3=3D
            if data.get("mode", 0) < 2:
                return None

            timestamp_ms = now_ms()
            if data.get("time"):
                timestamp_ms = int(
                    datetime.fromisoformat(data["time"].replace("Z", "+00:00")).timestamp() * 1000
                )

            return LocationSample(
                point=GeoPoint(latitude=float(data["lat"]), longitude=float(data["lon"])),
                timestamp_ms=timestamp_ms,
                accuracy_m=data.get("eph"),
            )

        except (KeyError, ValueError, TypeError) as e:
            logger.error("TPV parse error: %s - data: %s", e, data)
            return None

    async def stop(self) -> None:
        """Stop streaming and disconnect."""
        self._running = False
        await self.disconnect()


class SimulatedGPSClient(AsyncGPSClient):
    """
    Simulated GPS client for development and demos.

    Walks a straight line from ``start`` to ``end`` in ``steps`` fixes, one
    fix every ``interval_ms``, then ends the stream.
    """

    def __init__(
        self,
        start: GeoPoint,
        end: GeoPoint,
        steps: int = 60,
        interval_ms: int = 1000,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        super().__init__(GPSConfig(min_interval_ms=0))
        self._start = start
        self._end = end
        self._steps = max(1, steps)
        self._interval_ms = interval_ms
        self._clock = clock

    async def connect(self) -> bool:
        """Simulator always connects."""
        self._state.connected = True
        logger.info("Simulated GPS connected")
        return True

    async def stream_samples(self) -> AsyncIterator[LocationSample]:
        """Generate fixes along the line from start to end."""
        await self.connect()
        self._running = True
        step = 0

        while self._running and step <= self._steps:
            frac = step / self._steps
            point = GeoPoint(
                latitude=self._start.latitude + (self._end.latitude - self._start.latitude) * frac,
                longitude=self._start.longitude + (self._end.longitude - self._start.longitude) * frac,
            )
            sample = LocationSample(point=point, timestamp_ms=self._clock(), accuracy_m=5.0)
            self._publish(sample)
            step += 1

            yield sample
            await asyncio.sleep(self._interval_ms / 1000.0)

        self._state.connected = False

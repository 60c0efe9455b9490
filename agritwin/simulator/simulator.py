"""Periodic sensor simulation: generate, persist, then fan out."""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, Tuple

from agritwin.shared.constants import (
    CHANNEL_ALERTS,
    CHANNEL_SENSOR_DATA,
    SENSOR_DATA_INTERVAL,
    sensor_channel,
    zone_channel,
)
from agritwin.shared.database import SensorStore
from agritwin.shared.errors import StorageError
from agritwin.shared.models import Reading, Sensor, Status
from .alerts import AlertManager
from .generator import ValueGenerator
from .status import calculate_status

logger = logging.getLogger(__name__)


class BatchPublisher(Protocol):
    """Anything that can fan a message out to a named channel."""

    def publish(self, channel: str, event: str, payload: Any) -> int:
        ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SensorSimulator:
    """Drives one generation tick per interval for every active sensor.

    Within a tick every reading is persisted (independently per sensor)
    before the batch is published, so a subscriber reacting to a push can
    always find the readings in the store.
    """

    def __init__(
        self,
        store: SensorStore,
        publisher: BatchPublisher,
        generator: Optional[ValueGenerator] = None,
        alert_manager: Optional[AlertManager] = None,
        tick_interval: float = SENSOR_DATA_INTERVAL,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.publisher = publisher
        self.generator = generator or ValueGenerator()
        self.alert_manager = alert_manager or AlertManager(store)
        self.tick_interval = tick_interval
        self.clock = clock
        self.tick_count = 0
        self._task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._last_timestamp: Optional[datetime] = None
        self._active_ids: Set[str] = set()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic loop on the running event loop.

        Restarting drops all trend history so every sensor re-seeds.
        """
        if self.is_running:
            self._task.cancel()
        self.generator.reset()
        self._active_ids.clear()
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Sensor simulation started (every {self.tick_interval}s)")

    async def stop(self) -> None:
        """Cancel the periodic loop.

        A tick already in progress runs to completion first, so its
        readings and alerts are both stored and broadcast. Nothing is
        written after this returns.
        """
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

        if self._tick_task is not None:
            try:
                await self._tick_task
            except Exception:
                logger.exception("Sensor simulation tick failed")
            self._tick_task = None
        logger.info("Sensor simulation stopped")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            self._tick_task = loop.create_task(self.tick())
            try:
                await asyncio.shield(self._tick_task)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Sensor simulation tick failed")
            self._tick_task = None

            next_tick += self.tick_interval
            now = loop.time()
            if now > next_tick:
                # Overrun: skip the missed slots rather than queueing them
                skipped = int((now - next_tick) // self.tick_interval) + 1
                next_tick += skipped * self.tick_interval
                logger.warning(f"Tick overran its interval, skipping {skipped} tick(s)")
            await asyncio.sleep(next_tick - now)

    def _next_timestamp(self) -> datetime:
        """Tick timestamp, strictly after the previous tick's."""
        timestamp = self.clock()
        if self._last_timestamp is not None and timestamp <= self._last_timestamp:
            timestamp = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = timestamp
        return timestamp

    def generate_batch(
        self,
        sensors: List[Sensor],
        timestamp: datetime,
    ) -> List[Tuple[Sensor, Reading]]:
        """Produce one classified reading per sensor without side effects
        beyond the generator's trend history."""
        local_time = timestamp.astimezone()
        batch = []
        for sensor in sensors:
            value = self.generator.next_value(sensor, local_time)
            batch.append((sensor, Reading(
                sensor_id=sensor.id,
                value=value,
                unit=sensor.unit,
                status=calculate_status(value, sensor.thresholds),
                timestamp=timestamp,
                zone_id=sensor.zone_id,
            )))
        return batch

    async def tick(self) -> List[Reading]:
        """Run one generation cycle.

        Returns:
            The readings that were persisted and broadcast.
        """
        try:
            sensors = await asyncio.to_thread(self.store.get_sensors)
        except StorageError as e:
            logger.error(f"Failed to load active sensors: {e}")
            return []

        current_ids = {sensor.id for sensor in sensors}
        for sensor_id in self._active_ids - current_ids:
            self.generator.forget(sensor_id)
        self._active_ids = current_ids

        timestamp = self._next_timestamp()
        persisted: List[Tuple[Sensor, Reading]] = []
        for sensor, reading in self.generate_batch(sensors, timestamp):
            try:
                stored = await asyncio.to_thread(self.store.insert_reading, reading)
            except StorageError as e:
                logger.error(f"Failed to store reading for {sensor.id}, dropping it: {e}")
                continue
            persisted.append((sensor, stored))

        self.tick_count += 1
        self._broadcast([reading for _, reading in persisted])
        await self._raise_alerts(persisted)

        logger.debug(f"Tick {self.tick_count}: broadcast {len(persisted)}/{len(sensors)} readings")
        return [reading for _, reading in persisted]

    def _broadcast(self, readings: List[Reading]) -> None:
        if not readings:
            return

        try:
            self.publisher.publish(
                CHANNEL_SENSOR_DATA,
                "sensor-data:update",
                [reading.to_dict() for reading in readings],
            )

            by_zone: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
            for reading in readings:
                payload = reading.to_dict()
                if reading.zone_id:
                    by_zone[reading.zone_id].append(payload)
                self.publisher.publish(
                    sensor_channel(reading.sensor_id), "sensor-data:update", [payload]
                )

            for zone_id, payloads in by_zone.items():
                self.publisher.publish(
                    zone_channel(zone_id), "zone-data:update", {"zoneId": zone_id, "sensors": payloads}
                )
        except Exception:
            logger.exception("Failed to broadcast sensor batch")

    async def _raise_alerts(self, persisted: List[Tuple[Sensor, Reading]]) -> None:
        for sensor, reading in persisted:
            if reading.status == Status.NORMAL:
                continue
            try:
                event = await asyncio.to_thread(self.alert_manager.evaluate, sensor, reading)
            except StorageError as e:
                logger.error(f"Alert check failed for {sensor.id}: {e}")
                continue
            if event is not None:
                try:
                    self.publisher.publish(CHANNEL_ALERTS, "sensor:alert", event)
                except Exception:
                    logger.exception(f"Failed to broadcast alert for {sensor.id}")

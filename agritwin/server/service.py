"""Composition root for the twin backend: store, hub, simulator and server."""

import asyncio
import logging
import random
import signal
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional

from aiohttp import web

from agritwin.realtime.hub import ChannelHub
from agritwin.realtime.mqtt_publisher import MQTTPublisher
from agritwin.realtime.registry import SubscriptionRegistry
from agritwin.realtime.server import RealtimeServer
from agritwin.shared.constants import CHANNEL_SYSTEM
from agritwin.shared.database import SensorStore
from agritwin.shared.errors import StorageError
from agritwin.shared.settings import Config
from agritwin.simulator.alerts import AlertManager
from agritwin.simulator.generator import ValueGenerator
from agritwin.simulator.seed import seed_farm, sync_thresholds
from agritwin.simulator.simulator import SensorSimulator

logger = logging.getLogger(__name__)


class TwinService:
    """Owns every long-lived component and their lifecycles."""

    def __init__(self, config: Config, store: Optional[SensorStore] = None):
        """Initialize the service.

        Args:
            config: Validated configuration.
            store: Store to use instead of the configured backend.
        """
        self.config = config
        self.store = store or config.database.create_store()
        self.hub = ChannelHub()
        self.registry = SubscriptionRegistry(self.hub)
        self.server = RealtimeServer(
            self.store, self.hub, self.registry, queue_size=config.server.queue_size,
        )

        sim = config.simulation
        self.generator = ValueGenerator(
            rng=random.Random(sim.seed),
            history_size=sim.history_size,
            noise_fraction=sim.noise_fraction,
        )
        self.alert_manager = AlertManager(self.store, dedup_window=sim.alert_dedup_window)
        self.simulator = SensorSimulator(
            self.store,
            self.hub,
            generator=self.generator,
            alert_manager=self.alert_manager,
            tick_interval=sim.tick_interval,
        )

        self.mqtt_publisher: Optional[MQTTPublisher] = None
        self._tasks: List[asyncio.Task] = []
        self._runner: Optional[web.AppRunner] = None
        self._stop_event: Optional[asyncio.Event] = None

    def prepare_store(self) -> int:
        """Create tables, seed the farm layout on first run and apply the
        configured threshold ranges to stored sensors.

        Returns:
            Number of sensors seeded.
        """
        self.store.create_schema()
        seeded = seed_farm(self.store, self.config.farm)
        sync_thresholds(self.store, self.config.farm)
        return seeded

    async def start(self) -> None:
        """Prepare the store and start the simulation and periodic tasks."""
        await asyncio.to_thread(self.prepare_store)

        if self.config.mqtt.enabled:
            await self._start_mqtt()

        self.simulator.start()
        sim = self.config.simulation
        self._tasks = [
            self._spawn(self.publish_system_status, sim.alert_check_interval, "system status"),
            self._spawn(self.purge_old_readings, sim.cleanup_interval, "data retention"),
        ]
        logger.info("Twin service started")

    async def _start_mqtt(self) -> None:
        publisher = MQTTPublisher(self.config.mqtt, self.store.get_sensor)
        if not await asyncio.to_thread(publisher.connect):
            logger.error("MQTT bridge disabled: could not connect to broker")
            publisher.disconnect()
            return
        publisher.cache_sensors(await asyncio.to_thread(self.store.get_sensors, False))
        publisher.attach(self.hub)
        self.mqtt_publisher = publisher

    def _spawn(
        self,
        job: Callable[[], Awaitable[object]],
        interval: float,
        name: str,
    ) -> asyncio.Task:
        async def loop():
            while True:
                await asyncio.sleep(interval)
                try:
                    await job()
                except StorageError as e:
                    logger.error(f"Periodic {name} task failed: {e}")

        return asyncio.get_running_loop().create_task(loop())

    async def publish_system_status(self) -> dict:
        """Publish the system:status snapshot to every connection."""
        active = await asyncio.to_thread(self.store.count_active_sensors)
        unresolved = await asyncio.to_thread(self.store.count_unresolved_alerts)
        status = {
            "active_sensors": active,
            "unresolved_alerts": unresolved,
            "connections": self.server.connection_count,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        self.hub.publish(CHANNEL_SYSTEM, "system:status", status)
        return status

    async def purge_old_readings(self) -> int:
        """Delete readings older than the retention period.

        Returns:
            Number of readings deleted (0 when retention is disabled).
        """
        retention_days = self.config.simulation.retention_days
        if retention_days <= 0:
            return 0
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        deleted = await asyncio.to_thread(self.store.purge_readings, cutoff)
        if deleted:
            logger.info(f"Purged {deleted} readings older than {retention_days} days")
        return deleted

    async def stop(self) -> None:
        """Stop everything started by ``start``/``serve``. Safe to call twice."""
        await self.simulator.stop()

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        await self.server.close()

        if self.mqtt_publisher is not None:
            self.mqtt_publisher.disconnect()
            self.mqtt_publisher = None

        self.hub.close()
        self.store.close()
        logger.info("Twin service stopped")

    def request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def serve(self) -> None:
        """Run the HTTP/WebSocket server until SIGINT or SIGTERM."""
        self._stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.request_stop)

        await self.start()
        self._runner = web.AppRunner(self.server.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.server.host, self.config.server.port)
        await site.start()
        logger.info(
            f"AgriTwin server listening on {self.config.server.host}:{self.config.server.port}"
        )

        try:
            await self._stop_event.wait()
        finally:
            logger.info("Shutting down AgriTwin server...")
            await self.stop()

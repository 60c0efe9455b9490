"""aiohttp WebSocket server exposing the real-time channels to clients."""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from aiohttp import WSMsgType, web

from agritwin import __version__
from agritwin.shared.constants import (
    CHANNEL_ALERTS,
    CHANNEL_SENSOR_DATA,
    CHANNEL_SYSTEM,
    sensor_channel,
    zone_channel,
)
from agritwin.shared.database import SensorStore
from agritwin.shared.errors import AgriTwinError
from .hub import ChannelHub
from .registry import ConnectionSubscriptions, SubscriptionRegistry

logger = logging.getLogger(__name__)

SENSOR_HISTORY_WINDOW = timedelta(hours=24)
CURRENT_ALERTS_LIMIT = 20


class ClientConnection:
    """One WebSocket client: outbound queue, writer task and memberships."""

    def __init__(self, connection_id: str, ws: web.WebSocketResponse, queue_size: int):
        self.id = connection_id
        self.ws = ws
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.subscriptions: Optional[ConnectionSubscriptions] = None
        self.dropped = 0
        self._writer: Optional[asyncio.Task] = None

    def send(self, event: str, data: Any = None) -> bool:
        """Queue a frame for this client, dropping it if the queue is full."""
        try:
            self.queue.put_nowait({"event": event, "data": data})
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Outbound queue full for {self.id}, dropped {event}")
            return False

    def deliver(self, channel: str, event: str, payload: Any) -> None:
        """Hub callback."""
        self.send(event, payload)

    def start_writer(self) -> None:
        self._writer = asyncio.get_running_loop().create_task(self._write_loop())

    async def _write_loop(self) -> None:
        while True:
            message = await self.queue.get()
            if self.ws.closed:
                return
            try:
                await self.ws.send_json(message)
            except ConnectionResetError:
                logger.info(f"Connection {self.id} reset while sending")
                return
            except Exception as e:
                logger.warning(f"Connection {self.id} failed to send {message['event']}: {e}")
                return

    async def close(self) -> None:
        if self.subscriptions is not None:
            self.subscriptions.close()
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None


Handler = Callable[[ClientConnection, Any], Awaitable[None]]


class RealtimeServer:
    """Serves ``/ws`` and ``/health``.

    Every connection is joined to the ``system`` channel on connect. All
    other memberships are created by client events.
    """

    def __init__(
        self,
        store: SensorStore,
        hub: ChannelHub,
        registry: Optional[SubscriptionRegistry] = None,
        queue_size: int = 100,
    ):
        self.store = store
        self.hub = hub
        self.registry = registry or SubscriptionRegistry(hub)
        self.queue_size = queue_size
        self.connections: Dict[str, ClientConnection] = {}
        self._handlers: Dict[str, Handler] = {
            "subscribe:sensor-data": self._on_subscribe_sensor_data,
            "subscribe:zone": self._on_subscribe_zone,
            "subscribe:sensor": self._on_subscribe_sensor,
            "subscribe:alerts": self._on_subscribe_alerts,
            "unsubscribe:all": self._on_unsubscribe_all,
            "sensor:toggle": self._on_sensor_toggle,
            "alert:resolve": self._on_alert_resolve,
        }

    @property
    def connection_count(self) -> int:
        return len(self.connections)

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/ws", self.handle_websocket)
        app.router.add_get("/health", self.handle_health)
        app.on_shutdown.append(self._on_shutdown)
        return app

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
        })

    async def handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)

        connection = ClientConnection(uuid.uuid4().hex, ws, self.queue_size)
        connection.subscriptions = self.registry.register(connection.id, connection.deliver)
        connection.subscriptions.subscribe(CHANNEL_SYSTEM, pinned=True)
        self.connections[connection.id] = connection
        connection.start_writer()
        logger.info(f"Client connected: {connection.id} ({self.connection_count} total)")

        connection.send("connected", {
            "message": "Connected to AgriTwin real-time server",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self.handle_message(connection, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"WebSocket error on {connection.id}: {ws.exception()}")
        finally:
            self.connections.pop(connection.id, None)
            self.registry.unregister(connection.id)
            await connection.close()
            logger.info(f"Client disconnected: {connection.id} ({self.connection_count} total)")

        return ws

    async def handle_message(self, connection: ClientConnection, raw: str) -> None:
        """Decode one client frame and dispatch it to its handler."""
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            connection.send("error", {"message": "Malformed message"})
            return

        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            connection.send("error", {"message": "Message must be an object with an event"})
            return

        event = frame["event"]
        handler = self._handlers.get(event)
        if handler is None:
            connection.send("error", {"message": f"Unknown event: {event}"})
            return

        try:
            await handler(connection, frame.get("data"))
        except AgriTwinError as e:
            logger.error(f"Failed to handle {event} from {connection.id}: {e}")
            connection.send("error", {"message": f"Failed to handle {event}"})

    # -- client events -------------------------------------------------------

    async def _on_subscribe_sensor_data(self, connection: ClientConnection, data: Any) -> None:
        connection.subscriptions.subscribe(CHANNEL_SENSOR_DATA)
        latest = await asyncio.to_thread(self.store.get_latest_readings)
        connection.send("sensor-data:current", latest)

    async def _on_subscribe_zone(self, connection: ClientConnection, data: Any) -> None:
        zone_id = _extract_id(data, "zoneId")
        if not zone_id:
            connection.send("error", {"message": "Zone ID is required"})
            return
        zone_id = str(zone_id)
        connection.subscriptions.subscribe(zone_channel(zone_id))
        latest = await asyncio.to_thread(self.store.get_latest_readings, zone_id)
        connection.send("zone-data:current", {"zoneId": zone_id, "sensors": latest})

    async def _on_subscribe_sensor(self, connection: ClientConnection, data: Any) -> None:
        sensor_id = _extract_id(data, "sensorId")
        if not sensor_id:
            connection.send("error", {"message": "Sensor ID is required"})
            return
        sensor_id = str(sensor_id)
        connection.subscriptions.subscribe(sensor_channel(sensor_id))
        since = datetime.now(timezone.utc) - SENSOR_HISTORY_WINDOW
        history = await asyncio.to_thread(self.store.get_sensor_history, sensor_id, since)
        connection.send("sensor-history", {
            "sensorId": sensor_id,
            "data": [reading.to_dict() for reading in history],
        })

    async def _on_subscribe_alerts(self, connection: ClientConnection, data: Any) -> None:
        connection.subscriptions.subscribe(CHANNEL_ALERTS)
        alerts = await asyncio.to_thread(self.store.get_unresolved_alerts, CURRENT_ALERTS_LIMIT)
        connection.send("alerts:current", [alert.to_dict() for alert in alerts])

    async def _on_unsubscribe_all(self, connection: ClientConnection, data: Any) -> None:
        released = connection.subscriptions.unsubscribe_all()
        logger.debug(f"{connection.id} left {released} channel(s)")

    async def _on_sensor_toggle(self, connection: ClientConnection, data: Any) -> None:
        if not isinstance(data, dict) or not data.get("sensorId") or "isActive" not in data:
            connection.send("error", {"message": "sensorId and isActive are required"})
            return

        sensor_id = str(data["sensorId"])
        is_active = bool(data["isActive"])
        updated = await asyncio.to_thread(self.store.set_sensor_active, sensor_id, is_active)
        if not updated:
            connection.send("error", {"message": f"Sensor not found: {sensor_id}"})
            return

        logger.info(f"Sensor {sensor_id} {'activated' if is_active else 'deactivated'}")
        self.hub.publish(CHANNEL_SYSTEM, "sensor:status-changed", {
            "sensorId": sensor_id,
            "isActive": is_active,
        })

    async def _on_alert_resolve(self, connection: ClientConnection, data: Any) -> None:
        alert_id = _extract_id(data, "alertId")
        try:
            alert_id = int(alert_id)
        except (TypeError, ValueError):
            connection.send("error", {"message": "A numeric alert ID is required"})
            return

        resolved_at = datetime.now(timezone.utc)
        resolved = await asyncio.to_thread(self.store.resolve_alert, alert_id, resolved_at)
        if not resolved:
            connection.send("error", {"message": f"Alert {alert_id} not found or already resolved"})
            return

        logger.info(f"Alert {alert_id} resolved by {connection.id}")
        self.hub.publish(CHANNEL_SYSTEM, "alert:resolved", {
            "alertId": alert_id,
            "resolvedAt": resolved_at.isoformat(),
        })

    async def close(self) -> None:
        """Close every client connection."""
        for connection in list(self.connections.values()):
            await connection.ws.close()
            await connection.close()
        self.connections.clear()
        self.registry.close_all()

    async def _on_shutdown(self, app: web.Application) -> None:
        await self.close()


def _extract_id(data: Any, key: str) -> Any:
    """Accept either a bare id or ``{key: id}``."""
    if isinstance(data, dict):
        return data.get(key)
    return data

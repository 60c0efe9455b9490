"""Forwards hub traffic to an MQTT broker."""

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from agritwin.shared.constants import CHANNEL_ALERTS, CHANNEL_SENSOR_DATA
from agritwin.shared.models import Reading, Sensor, Status
from agritwin.shared.mqtt import (
    MQTTConfig,
    alerts_topic,
    create_alert_payload,
    create_sensor_payload,
    reading_topic,
)
from .hub import ChannelHub, Subscription

logger = logging.getLogger(__name__)

SensorLookup = Callable[[str], Optional[Sensor]]


class MQTTPublisher:
    """Publishes readings and alerts from the hub to an MQTT broker."""

    def __init__(
        self,
        config: MQTTConfig,
        sensor_lookup: SensorLookup,
        client_factory: Optional[Callable[..., mqtt.Client]] = None,
    ):
        """Initialize MQTT publisher.

        Args:
            config: MQTT configuration.
            sensor_lookup: Resolves a sensor id to its sensor, used to build
                topics for sensors not yet cached.
            client_factory: Creates the paho client (tests pass a fake).
        """
        self.config = config
        self.sensor_lookup = sensor_lookup
        self.client_factory = client_factory or mqtt.Client
        self.client: Optional[mqtt.Client] = None
        self._connected = False
        self._connect_event = threading.Event()
        self._sensors: Dict[str, Sensor] = {}
        self._subscriptions: List[Subscription] = []

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code == 0:
            logger.info(f"Connected to MQTT broker at {self.config.broker}:{self.config.port}")
            self._connected = True
        else:
            logger.error(f"Failed to connect to MQTT broker: {reason_code}")
            self._connected = False
        self._connect_event.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        self._connected = False
        if reason_code != 0:
            logger.warning(f"Unexpected MQTT disconnection (reason={reason_code})")
        else:
            logger.info("Disconnected from MQTT broker")

    def connect(self, timeout: float = 10.0) -> bool:
        """Connect to the broker, blocking until the CONNACK or timeout.

        Returns:
            True if connected successfully, False otherwise.
        """
        self._connect_event.clear()
        self.client = self.client_factory(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=self.config.client_id,
        )
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        logger.info(f"Connecting to MQTT broker at {self.config.broker}:{self.config.port}")
        try:
            self.client.connect(self.config.broker, self.config.port, keepalive=self.config.keepalive)
            self.client.loop_start()
        except OSError as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            return False

        if self._connect_event.wait(timeout=timeout):
            return self._connected
        logger.error("Timeout waiting for MQTT connection")
        return False

    def disconnect(self) -> None:
        self.detach()
        if self.client:
            self.client.loop_stop()
            self.client.disconnect()
            self.client = None
            self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def attach(self, hub: ChannelHub) -> None:
        """Start forwarding the hub's sensor-data and alerts channels."""
        self._subscriptions.append(hub.subscribe(CHANNEL_SENSOR_DATA, self._forward))
        self._subscriptions.append(hub.subscribe(CHANNEL_ALERTS, self._forward))

    def detach(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()

    def cache_sensors(self, sensors: List[Sensor]) -> None:
        self._sensors.update({sensor.id: sensor for sensor in sensors})

    def _sensor(self, sensor_id: str) -> Optional[Sensor]:
        sensor = self._sensors.get(sensor_id)
        if sensor is None:
            sensor = self.sensor_lookup(sensor_id)
            if sensor is not None:
                self._sensors[sensor_id] = sensor
        return sensor

    def _forward(self, channel: str, event: str, payload: Any) -> None:
        if channel == CHANNEL_ALERTS:
            self._publish(alerts_topic(self.config.topic_prefix), create_alert_payload(payload))
            return
        for item in payload:
            self.publish_reading(_reading_from_payload(item))

    def publish_reading(self, reading: Reading) -> bool:
        """Publish one reading on its zone/type topic."""
        sensor = self._sensor(reading.sensor_id)
        if sensor is None:
            logger.warning(f"Unknown sensor {reading.sensor_id}, not publishing")
            return False
        return self._publish(
            reading_topic(self.config.topic_prefix, sensor),
            create_sensor_payload(reading),
        )

    def _publish(self, topic: str, payload: str) -> bool:
        if not self._connected or not self.client:
            logger.debug(f"Not connected to MQTT broker, skipping {topic}")
            return False

        result = self.client.publish(topic, payload, qos=self.config.qos)
        if result.rc == mqtt.MQTT_ERR_SUCCESS:
            logger.debug(f"Published to {topic}: {payload}")
            return True
        logger.warning(f"Failed to publish to {topic}: rc={result.rc}")
        return False


def _reading_from_payload(item: Dict[str, Any]) -> Reading:
    return Reading(
        sensor_id=item["sensor_id"],
        value=item["value"],
        unit=item["unit"],
        status=Status(item["status"]),
        timestamp=datetime.fromisoformat(item["timestamp"]),
        id=item.get("id"),
        zone_id=item.get("zone_id"),
    )

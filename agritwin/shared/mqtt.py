"""MQTT configuration and payload helpers."""

import json
import time
from dataclasses import dataclass
from typing import Optional

from .models import Reading, Sensor


@dataclass
class MQTTConfig:
    """MQTT broker configuration."""
    enabled: bool = False
    broker: str = "localhost"
    port: int = 1883
    client_id: str = "agritwin-server"
    keepalive: int = 60
    qos: int = 1
    topic_prefix: str = "agritwin"

    @classmethod
    def from_dict(cls, data: dict) -> "MQTTConfig":
        """Create config from dictionary."""
        return cls(
            enabled=bool(data.get("enabled", False)),
            broker=data.get("broker", "localhost"),
            port=int(data.get("port", 1883)),
            client_id=data.get("client_id", "agritwin-server"),
            keepalive=int(data.get("keepalive", 60)),
            qos=int(data.get("qos", 1)),
            topic_prefix=data.get("topic_prefix", "agritwin").rstrip("/"),
        )


def reading_topic(prefix: str, sensor: Sensor) -> str:
    """Topic for a sensor's readings: {prefix}/{zone_id}/{sensor_type}."""
    return f"{prefix}/{sensor.zone_id}/{sensor.type.value}"


def alerts_topic(prefix: str) -> str:
    return f"{prefix}/alerts"


def create_sensor_payload(reading: Reading, timestamp: Optional[float] = None) -> str:
    """Create the JSON payload published for a reading.

    Args:
        reading: The reading to publish.
        timestamp: Unix timestamp (defaults to the reading's own timestamp).

    Returns:
        JSON string payload.
    """
    return json.dumps({
        "value": reading.value,
        "unit": reading.unit,
        "ts": timestamp if timestamp is not None else reading.timestamp.timestamp(),
        "sensor": reading.sensor_id,
        "status": reading.status.value,
    })


def create_alert_payload(alert_event: dict) -> str:
    """Create the JSON payload published for an alert event."""
    payload = dict(alert_event)
    payload.setdefault("ts", time.time())
    return json.dumps(payload)

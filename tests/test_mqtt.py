"""Tests for MQTT payloads and the hub-to-MQTT bridge."""

import json
from datetime import datetime, timezone

from agritwin.realtime.hub import ChannelHub
from agritwin.realtime.mqtt_publisher import MQTTPublisher
from agritwin.shared.constants import CHANNEL_ALERTS, CHANNEL_SENSOR_DATA
from agritwin.shared.models import SensorType, Status
from agritwin.shared.mqtt import (
    MQTTConfig,
    alerts_topic,
    create_alert_payload,
    create_sensor_payload,
    reading_topic,
)
from tests.helpers import make_reading, make_sensor

T0 = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeResult:
    rc = 0


class FakeMQTTClient:
    """Stands in for paho's Client; acknowledges connects immediately."""

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.published = []
        self.on_connect = None
        self.on_disconnect = None
        self.loop_running = False

    def connect(self, host, port, keepalive=60):
        self.on_connect(self, None, None, 0, None)

    def loop_start(self):
        self.loop_running = True

    def loop_stop(self):
        self.loop_running = False

    def disconnect(self):
        self.on_disconnect(self, None, None, 0, None)

    def publish(self, topic, payload, qos=0):
        self.published.append((topic, json.loads(payload), qos))
        return FakeResult()


class RefusingMQTTClient(FakeMQTTClient):
    def connect(self, host, port, keepalive=60):
        raise ConnectionRefusedError("broker down")


def test_config_from_dict_strips_trailing_slash():
    config = MQTTConfig.from_dict({"enabled": True, "topic_prefix": "farm/", "port": "1884"})
    assert config.enabled
    assert config.topic_prefix == "farm"
    assert config.port == 1884


def test_sensor_payload_shape():
    sensor = make_sensor(SensorType.HUMIDITY, sensor_id="zone-2-1-humidity", zone_id="zone-2-1")
    payload = json.loads(create_sensor_payload(make_reading(sensor, 66.4, Status.NORMAL, T0)))
    assert payload == {
        "value": 66.4,
        "unit": "%",
        "ts": T0.timestamp(),
        "sensor": "zone-2-1-humidity",
        "status": "normal",
    }
    assert reading_topic("agritwin", sensor) == "agritwin/zone-2-1/humidity"
    assert alerts_topic("agritwin") == "agritwin/alerts"


def test_alert_payload_adds_timestamp():
    payload = json.loads(create_alert_payload({"alert_id": 3, "severity": "warning"}))
    assert payload["alert_id"] == 3
    assert "ts" in payload


def test_bridge_forwards_hub_traffic():
    sensor = make_sensor()
    hub = ChannelHub()
    publisher = MQTTPublisher(
        MQTTConfig(enabled=True, topic_prefix="farm"),
        sensor_lookup=lambda sensor_id: sensor if sensor_id == sensor.id else None,
        client_factory=FakeMQTTClient,
    )
    assert publisher.connect(timeout=1)
    publisher.attach(hub)

    reading = make_reading(sensor, 24.5, Status.NORMAL, T0)
    hub.publish(CHANNEL_SENSOR_DATA, "sensor-data:update", [reading.to_dict()])
    hub.publish(CHANNEL_ALERTS, "sensor:alert", {"alert_id": 1, "severity": "critical"})

    published = publisher.client.published
    assert published[0][0] == "farm/zone-1-1/temperature"
    assert published[0][1]["value"] == 24.5
    assert published[0][2] == 1
    assert published[1][0] == "farm/alerts"
    assert published[1][1]["severity"] == "critical"

    publisher.disconnect()
    assert hub.subscriber_count(CHANNEL_SENSOR_DATA) == 0
    assert not publisher.is_connected


def test_unknown_sensor_is_not_published():
    publisher = MQTTPublisher(MQTTConfig(), sensor_lookup=lambda sensor_id: None,
                              client_factory=FakeMQTTClient)
    publisher.connect(timeout=1)
    reading = make_reading(make_sensor(), 24.5, Status.NORMAL, T0)
    assert not publisher.publish_reading(reading)
    assert publisher.client.published == []


def test_connection_failure_is_reported():
    publisher = MQTTPublisher(MQTTConfig(), sensor_lookup=lambda sensor_id: None,
                              client_factory=RefusingMQTTClient)
    assert not publisher.connect(timeout=0.1)
    assert not publisher.is_connected

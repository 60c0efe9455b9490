"""Builders and fakes shared by the test modules."""

from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from agritwin.shared.constants import SENSOR_RANGES
from agritwin.shared.models import Reading, Sensor, SensorType, Status, Thresholds

TEMP_THRESHOLDS = Thresholds(20, 30, 15, 35, 10, 40)


def make_sensor(
    sensor_type: SensorType = SensorType.TEMPERATURE,
    sensor_id: str = "zone-1-1-temperature",
    zone_id: str = "zone-1-1",
    thresholds: Optional[Thresholds] = None,
    level: int = 1,
) -> Sensor:
    defaults = SENSOR_RANGES[sensor_type]
    return Sensor(
        id=sensor_id,
        name=f"Test {sensor_type.value}",
        type=sensor_type,
        zone_id=zone_id,
        unit=defaults["unit"],
        thresholds=thresholds or defaults["thresholds"],
        level=level,
    )


def make_reading(
    sensor: Sensor,
    value: float,
    status: Status,
    timestamp: Optional[datetime] = None,
) -> Reading:
    return Reading(
        sensor_id=sensor.id,
        value=value,
        unit=sensor.unit,
        status=status,
        timestamp=timestamp or datetime.now(timezone.utc),
        zone_id=sensor.zone_id,
    )


class RecordingPublisher:
    """Collects every publish call."""

    def __init__(self):
        self.messages: List[Tuple[str, str, Any]] = []

    def publish(self, channel: str, event: str, payload: Any) -> int:
        self.messages.append((channel, event, payload))
        return 1

    def on(self, channel: str) -> List[Tuple[str, Any]]:
        return [(event, payload) for ch, event, payload in self.messages if ch == channel]

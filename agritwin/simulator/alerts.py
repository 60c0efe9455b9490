"""Threshold alerts with per-sensor, per-severity deduplication."""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from agritwin.shared.constants import ALERT_DEDUP_WINDOW
from agritwin.shared.database import SensorStore
from agritwin.shared.models import Alert, Reading, Sensor, Status

logger = logging.getLogger(__name__)

ALERT_MESSAGES = {
    Status.WARNING: "{name}: warning level value detected: {value}{unit}",
    Status.CRITICAL: "{name}: critical level value detected: {value}{unit}",
}


def build_alert_message(sensor: Sensor, value: float, severity: Status) -> str:
    return ALERT_MESSAGES[severity].format(name=sensor.name, value=value, unit=sensor.unit)


class AlertManager:
    """Creates alerts for non-normal readings.

    No alert is created while an unresolved alert of the same severity for
    the same sensor exists that was created within the dedup window.
    Alerts are never modified here after creation; resolution happens
    through the store.
    """

    def __init__(self, store: SensorStore, dedup_window: float = ALERT_DEDUP_WINDOW):
        self.store = store
        self.dedup_window = timedelta(seconds=dedup_window)

    def evaluate(self, sensor: Sensor, reading: Reading) -> Optional[Dict[str, Any]]:
        """Create an alert for a reading if one is due.

        Returns:
            The alert event to broadcast, or None if no alert was created.
        """
        if reading.status == Status.NORMAL:
            return None

        since = reading.timestamp - self.dedup_window
        existing = self.store.find_open_alert(sensor.id, reading.status, since)
        if existing is not None:
            logger.debug(f"Suppressed duplicate {reading.status.value} alert for {sensor.id}")
            return None

        message = build_alert_message(sensor, reading.value, reading.status)
        alert = self.store.create_alert(Alert(
            sensor_id=sensor.id,
            message=message,
            severity=reading.status,
            created_at=reading.timestamp,
        ))
        logger.warning(f"Alert created for sensor {sensor.name}: {message}")

        return {
            "alert_id": alert.id,
            "sensor_id": sensor.id,
            "sensor_name": sensor.name,
            "message": message,
            "severity": reading.status.value,
            "value": reading.value,
            "unit": sensor.unit,
            "timestamp": reading.timestamp.isoformat(),
        }

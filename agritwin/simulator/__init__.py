"""Sensor value simulation: generation, classification and alerting."""

from .alerts import AlertManager, build_alert_message
from .generator import ValueGenerator, profile_value
from .seed import seed_farm, sync_thresholds
from .simulator import BatchPublisher, SensorSimulator
from .status import calculate_status

__all__ = [
    "AlertManager",
    "BatchPublisher",
    "SensorSimulator",
    "ValueGenerator",
    "build_alert_message",
    "calculate_status",
    "profile_value",
    "seed_farm",
    "sync_thresholds",
]

"""Simulated sensor value generation.

Each new value is a small perturbation of the sensor's previous value: a
mean-reverting drift toward a time-of-day profile plus bounded uniform
noise. The first value for a sensor is drawn from its normal band.
"""

import logging
import math
import random
from collections import deque
from datetime import datetime
from typing import Deque, Dict, List, Optional

from agritwin.shared.constants import HISTORY_SIZE
from agritwin.shared.models import Sensor, SensorType, Thresholds

logger = logging.getLogger(__name__)

# Fraction of the distance to the profile covered per tick
REVERSION_RATES = {
    SensorType.TEMPERATURE: 0.1,
    SensorType.HUMIDITY: 0.15,
    SensorType.SOIL_MOISTURE: 0.2,
    SensorType.LIGHT: 0.3,
    SensorType.CO2: 0.2,
}


def _day_angle(hour: float) -> float:
    return (hour - 6) * math.pi / 12


def profile_value(
    sensor_type: SensorType,
    thresholds: Thresholds,
    when: datetime,
    level: int = 1,
) -> float:
    """Target value for a sensor type at a local wall-clock time.

    Args:
        sensor_type: Kind of sensor.
        thresholds: The sensor's bands; the normal midpoint anchors most curves.
        when: Local time of day.
        level: Farm level of the sensor's zone (upper levels run warmer).
    """
    hour = when.hour + when.minute / 60
    minute = when.minute
    midpoint = thresholds.normal_midpoint

    if sensor_type == SensorType.TEMPERATURE:
        # Day curve, warmest at midday, +1 °C per level above ground
        return midpoint + 4 * math.sin(_day_angle(hour)) + (level - 1)

    if sensor_type == SensorType.HUMIDITY:
        # Inverse of temperature plus misting for 3 minutes every 15
        irrigation = 15 if minute % 15 < 3 else 0
        return midpoint + 8 * math.cos(_day_angle(hour)) + irrigation

    if sensor_type == SensorType.SOIL_MOISTURE:
        # Continuous evaporation, irrigation for 2 minutes every 20
        irrigation = 25 if minute % 20 < 2 else 0
        return midpoint - 5 + irrigation

    if sensor_type == SensorType.LIGHT:
        if 6 <= when.hour <= 18:
            # Sun plus LED supplement
            return 22000 + 13000 * math.sin(_day_angle(hour))
        if 19 <= when.hour <= 22:
            # Evening grow lights
            return 25000
        return 1000

    if sensor_type == SensorType.CO2:
        # Plants absorb by day and respire at night; vents run 5 minutes every 30
        respiration = -100 if 6 <= when.hour <= 18 else 50
        ventilation = -200 if minute % 30 < 5 else 0
        return midpoint + respiration + ventilation

    return midpoint


def round_for_display(sensor_type: SensorType, value: float) -> float:
    """One decimal place, whole numbers for light levels."""
    decimals = 0 if sensor_type == SensorType.LIGHT else 1
    return float(round(value, decimals))


class ValueGenerator:
    """Generates the next value for each sensor from its trend history.

    The history map is owned by the generator; nothing else mutates it.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        history_size: int = HISTORY_SIZE,
        noise_fraction: float = 0.03,
    ):
        self.rng = rng or random.Random()
        self.history_size = history_size
        self.noise_fraction = noise_fraction
        self._history: Dict[str, Deque[float]] = {}

    def next_value(self, sensor: Sensor, when: datetime) -> float:
        """Produce the next value for a sensor.

        Args:
            sensor: Sensor configuration.
            when: Local wall-clock time used for time-of-day shaping.

        Returns:
            New value, rounded and within the sensor's critical band.
        """
        thresholds = sensor.thresholds
        history = self._history.get(sensor.id)

        if not history:
            value = self.rng.uniform(thresholds.min_normal, thresholds.max_normal)
        else:
            last = history[-1]
            target = profile_value(sensor.type, thresholds, when, sensor.level)
            drift = REVERSION_RATES.get(sensor.type, 0.1) * (target - last)
            spread = self.noise_fraction * thresholds.normal_span
            noise = self.rng.uniform(-spread, spread)
            value = last + drift + noise

        value = thresholds.clamp(round_for_display(sensor.type, thresholds.clamp(value)))

        if history is None:
            history = self._history[sensor.id] = deque(maxlen=self.history_size)
        history.append(value)
        return value

    def last_value(self, sensor_id: str) -> Optional[float]:
        history = self._history.get(sensor_id)
        return history[-1] if history else None

    def history(self, sensor_id: str) -> List[float]:
        return list(self._history.get(sensor_id, ()))

    def forget(self, sensor_id: str) -> None:
        """Drop trend state for one sensor (e.g. after deactivation)."""
        self._history.pop(sensor_id, None)

    def reset(self) -> None:
        """Drop all trend state; the next tick re-seeds every sensor."""
        self._history.clear()
        logger.debug("Trend history cleared")

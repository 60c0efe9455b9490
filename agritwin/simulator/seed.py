"""Initial farm layout: zones per level and one sensor per type in each zone."""

import logging
import string
from typing import List

from agritwin.shared.constants import SENSOR_DISPLAY_NAMES
from agritwin.shared.database import SensorStore
from agritwin.shared.models import Sensor, Zone
from agritwin.shared.settings import FarmConfig

logger = logging.getLogger(__name__)


def build_layout(farm: FarmConfig) -> List[Zone]:
    zones = []
    crop_index = 0
    for level in range(1, farm.levels + 1):
        for n in range(1, farm.zones_per_level + 1):
            crop = farm.crops[crop_index % len(farm.crops)] if farm.crops else None
            crop_index += 1
            zones.append(Zone(
                id=f"zone-{level}-{n}",
                name=f"Level {level} Zone {string.ascii_uppercase[(n - 1) % 26]}",
                level=level,
                crop_type=crop,
            ))
    return zones


def build_sensors(zone: Zone, farm: FarmConfig) -> List[Sensor]:
    sensors = []
    for sensor_type in farm.sensor_types:
        sensor_range = farm.ranges[sensor_type]
        sensors.append(Sensor(
            id=f"{zone.id}-{sensor_type.value}",
            name=f"{zone.name} {SENSOR_DISPLAY_NAMES[sensor_type]} Sensor",
            type=sensor_type,
            zone_id=zone.id,
            unit=sensor_range.unit,
            thresholds=sensor_range.thresholds,
            level=zone.level,
        ))
    return sensors


def seed_farm(store: SensorStore, farm: FarmConfig) -> int:
    """Create zones and sensors unless the store already has a layout.

    Returns:
        Number of sensors created.
    """
    if store.zone_count() > 0:
        logger.info("Farm layout already present, skipping seed")
        return 0

    created = 0
    for zone in build_layout(farm):
        store.add_zone(zone)
        for sensor in build_sensors(zone, farm):
            store.add_sensor(sensor)
            created += 1

    logger.info(f"Seeded {farm.levels * farm.zones_per_level} zones with {created} sensors")
    return created


def sync_thresholds(store: SensorStore, farm: FarmConfig) -> List[Sensor]:
    """Bring stored sensors' thresholds in line with the configured ranges.

    Deactivated sensors are updated too so they come back with the current
    ranges. Sensor types without a configured range are left untouched.

    Returns:
        The sensors whose thresholds changed, with their new thresholds.
    """
    updated = []
    for sensor in store.get_sensors(active_only=False):
        sensor_range = farm.ranges.get(sensor.type)
        if sensor_range is None or sensor.thresholds == sensor_range.thresholds:
            continue
        store.update_thresholds(sensor.id, sensor_range.thresholds)
        updated.append(sensor.with_thresholds(sensor_range.thresholds))

    if updated:
        logger.info(f"Updated thresholds for {len(updated)} sensor(s) from configuration")
    return updated

"""
Data Fetcher for the Farm Monitor
Reads the latest farm state from the store, with caching for outages.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from agritwin.shared.constants import SENSOR_DISPLAY_NAMES
from agritwin.shared.database import SensorStore
from agritwin.shared.errors import StorageError
from agritwin.shared.models import Sensor, Status

logger = logging.getLogger(__name__)


@dataclass
class SensorStatus:
    """Display state for one sensor"""
    sensor_id: str
    label: str
    zone_id: str
    level: int
    value: Optional[float]
    unit: str
    status: Optional[Status]
    last_update: Optional[datetime]
    is_online: bool
    status_text: str  # "24.1°C" or "STALE (2m ago)"


@dataclass
class AlertLine:
    severity: Status
    text: str
    created_at: datetime


@dataclass
class SystemStatus:
    """Overall farm status"""
    database_connected: bool
    levels: Dict[int, List[SensorStatus]]
    alerts: List[AlertLine]
    active_sensors: int = 0
    unresolved_alerts: int = 0
    messages: List[str] = field(default_factory=list)


class DataFetcher:
    """Fetches and caches farm status with graceful error handling"""

    CACHE_MAX_AGE = timedelta(minutes=5)
    ALERT_LIMIT = 10

    def __init__(
        self,
        store: SensorStore,
        max_age: timedelta = timedelta(minutes=1),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.max_age = max_age
        self.clock = clock
        self.last_successful_fetch: Optional[datetime] = None
        self.cached_status: Optional[SystemStatus] = None

    def get_system_status(self) -> SystemStatus:
        """Get current farm status, falling back to the cache on failure"""
        try:
            return self._fetch_current_status()
        except StorageError as e:
            logger.error(f"Failed to fetch system status: {e}")
            return self._get_fallback_status(str(e))

    def _fetch_current_status(self) -> SystemStatus:
        sensors = self.store.get_sensors(active_only=True)
        latest = {row["sensor_id"]: row for row in self.store.get_latest_readings()}
        alerts = self.store.get_unresolved_alerts(self.ALERT_LIMIT)
        unresolved = self.store.count_unresolved_alerts()

        levels: Dict[int, List[SensorStatus]] = defaultdict(list)
        for sensor in sensors:
            levels[sensor.level].append(self._sensor_status(sensor, latest.get(sensor.id)))

        status = SystemStatus(
            database_connected=True,
            levels=dict(sorted(levels.items())),
            alerts=[
                AlertLine(
                    severity=alert.severity,
                    text=f"[{alert.extra.get('zone_name', alert.sensor_id)}] {alert.message}",
                    created_at=alert.created_at,
                )
                for alert in alerts
            ],
            active_sensors=len(sensors),
            unresolved_alerts=unresolved,
        )

        self.last_successful_fetch = self.clock()
        self.cached_status = status
        return status

    def _sensor_status(self, sensor: Sensor, row: Optional[dict]) -> SensorStatus:
        label = f"{sensor.zone_id} {SENSOR_DISPLAY_NAMES[sensor.type]}"
        if row is None:
            return SensorStatus(
                sensor_id=sensor.id,
                label=label,
                zone_id=sensor.zone_id,
                level=sensor.level,
                value=None,
                unit=sensor.unit,
                status=None,
                last_update=None,
                is_online=False,
                status_text="NO DATA",
            )

        timestamp = datetime.fromisoformat(row["timestamp"])
        is_online = self._is_reading_recent(timestamp)
        if is_online:
            status_text = f"{row['value']:g}{sensor.unit}"
        else:
            status_text = f"STALE ({self._format_time_ago(timestamp)})"

        return SensorStatus(
            sensor_id=sensor.id,
            label=label,
            zone_id=sensor.zone_id,
            level=sensor.level,
            value=row["value"],
            unit=sensor.unit,
            status=Status(row["status"]),
            last_update=timestamp,
            is_online=is_online,
            status_text=status_text,
        )

    def _is_reading_recent(self, timestamp: datetime) -> bool:
        return self.clock() - timestamp < self.max_age

    def _format_time_ago(self, timestamp: Optional[datetime]) -> str:
        if not timestamp:
            return "unknown"

        seconds = (self.clock() - timestamp).total_seconds()
        if seconds < 60:
            return f"{int(seconds)}s ago"
        elif seconds < 3600:
            return f"{int(seconds / 60)}m ago"
        return f"{int(seconds / 3600)}h ago"

    def _get_fallback_status(self, error_msg: str) -> SystemStatus:
        """Cached status if recent enough, otherwise an error status"""
        if (self.cached_status and self.last_successful_fetch and
                self.clock() - self.last_successful_fetch < self.CACHE_MAX_AGE):
            cached = self.cached_status
            return SystemStatus(
                database_connected=False,
                levels=cached.levels,
                alerts=cached.alerts,
                active_sensors=cached.active_sensors,
                unresolved_alerts=cached.unresolved_alerts,
                messages=[f"Database error, showing cached data: {error_msg}"],
            )

        return SystemStatus(
            database_connected=False,
            levels={},
            alerts=[],
            messages=[f"System error: {error_msg}"],
        )

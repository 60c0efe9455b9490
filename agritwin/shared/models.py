"""Core data models for the farm twin."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .errors import InvalidThresholdsError


class SensorType(str, Enum):
    """Kinds of simulated sensors."""
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    SOIL_MOISTURE = "soil_moisture"
    LIGHT = "light"
    CO2 = "co2"


class Status(str, Enum):
    """Reading status, ordered by severity."""
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {Status.NORMAL: 0, Status.WARNING: 1, Status.CRITICAL: 2}


@dataclass(frozen=True)
class Thresholds:
    """Normal, warning and critical bands for a sensor.

    The critical band is the outermost one:
    min_critical <= min_warning <= min_normal <= max_normal <= max_warning <= max_critical
    """
    min_normal: float
    max_normal: float
    min_warning: float
    max_warning: float
    min_critical: float
    max_critical: float

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check the band ordering.

        Raises:
            InvalidThresholdsError: If any boundary is out of order.
        """
        bounds = [
            ("min_critical", self.min_critical),
            ("min_warning", self.min_warning),
            ("min_normal", self.min_normal),
            ("max_normal", self.max_normal),
            ("max_warning", self.max_warning),
            ("max_critical", self.max_critical),
        ]
        for (lower_name, lower), (upper_name, upper) in zip(bounds, bounds[1:]):
            if lower > upper:
                raise InvalidThresholdsError(
                    f"{lower_name}={lower} must not exceed {upper_name}={upper}"
                )

    @property
    def normal_span(self) -> float:
        return self.max_normal - self.min_normal

    @property
    def normal_midpoint(self) -> float:
        return (self.min_normal + self.max_normal) / 2

    def clamp(self, value: float) -> float:
        """Clamp a value into the critical band."""
        return max(self.min_critical, min(self.max_critical, value))

    @classmethod
    def from_dict(cls, data: dict) -> "Thresholds":
        """Create thresholds from a flat or nested mapping.

        Accepts either the six flat keys (``min_normal`` ...) or the
        nested ``{"normal": {"min": .., "max": ..}, ...}`` form.
        """
        if "normal" in data:
            return cls(
                min_normal=float(data["normal"]["min"]),
                max_normal=float(data["normal"]["max"]),
                min_warning=float(data["warning"]["min"]),
                max_warning=float(data["warning"]["max"]),
                min_critical=float(data["critical"]["min"]),
                max_critical=float(data["critical"]["max"]),
            )
        try:
            return cls(**{name: float(data[name]) for name in THRESHOLD_FIELDS})
        except KeyError as e:
            raise InvalidThresholdsError(f"Missing threshold {e.args[0]}") from e

    def to_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in THRESHOLD_FIELDS}


THRESHOLD_FIELDS = (
    "min_normal",
    "max_normal",
    "min_warning",
    "max_warning",
    "min_critical",
    "max_critical",
)


@dataclass
class Zone:
    """A growing zone on one level of the farm."""
    id: str
    name: str
    level: int
    area: float = 25.0
    crop_type: Optional[str] = None


@dataclass
class Sensor:
    """A simulated sensor and its static configuration."""
    id: str
    name: str
    type: SensorType
    zone_id: str
    unit: str
    thresholds: Thresholds
    level: int = 1
    is_active: bool = True

    def with_thresholds(self, thresholds: Thresholds) -> "Sensor":
        return replace(self, thresholds=thresholds)


@dataclass(frozen=True)
class Reading:
    """A single persisted (or about to be persisted) sensor reading."""
    sensor_id: str
    value: float
    unit: str
    status: Status
    timestamp: datetime
    id: Optional[int] = None
    zone_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation for real-time subscribers."""
        return {
            "id": self.id,
            "sensor_id": self.sensor_id,
            "zone_id": self.zone_id,
            "value": self.value,
            "unit": self.unit,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Alert:
    """A threshold alert raised for a sensor."""
    sensor_id: str
    message: str
    severity: Status
    created_at: datetime
    id: Optional[int] = None
    is_resolved: bool = False
    resolved_at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "sensor_id": self.sensor_id,
            "message": self.message,
            "severity": self.severity.value,
            "is_resolved": self.is_resolved,
            "created_at": self.created_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }
        data.update(self.extra)
        return data

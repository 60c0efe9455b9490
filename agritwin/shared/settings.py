"""Service configuration: dataclasses built from the YAML config file."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from dotenv import load_dotenv

from .config import REPO_ROOT, get_config_path, load_yaml_config
from .constants import (
    ALERT_DEDUP_WINDOW,
    ALERTS_CHECK_INTERVAL,
    DATA_RETENTION_DAYS,
    DATABASE_CLEANUP_INTERVAL,
    HISTORY_SIZE,
    SENSOR_DATA_INTERVAL,
    SENSOR_RANGES,
)
from .database import DBConfig, MySQLStore, SensorStore, SQLiteStore
from .errors import ConfigError, InvalidThresholdsError
from .models import SensorType, Thresholds
from .mqtt import MQTTConfig

logger = logging.getLogger(__name__)


@dataclass
class SimulationConfig:
    tick_interval: float = SENSOR_DATA_INTERVAL
    alert_check_interval: float = ALERTS_CHECK_INTERVAL
    alert_dedup_window: float = ALERT_DEDUP_WINDOW
    history_size: int = HISTORY_SIZE
    noise_fraction: float = 0.03
    retention_days: int = DATA_RETENTION_DAYS
    cleanup_interval: float = DATABASE_CLEANUP_INTERVAL
    seed: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "SimulationConfig":
        config = cls(
            tick_interval=float(data.get("tick_interval", SENSOR_DATA_INTERVAL)),
            alert_check_interval=float(data.get("alert_check_interval", ALERTS_CHECK_INTERVAL)),
            alert_dedup_window=float(data.get("alert_dedup_window", ALERT_DEDUP_WINDOW)),
            history_size=int(data.get("history_size", HISTORY_SIZE)),
            noise_fraction=float(data.get("noise_fraction", 0.03)),
            retention_days=int(data.get("retention_days", DATA_RETENTION_DAYS)),
            cleanup_interval=float(data.get("cleanup_interval", DATABASE_CLEANUP_INTERVAL)),
            seed=data.get("seed"),
        )
        for name in ("tick_interval", "alert_check_interval", "cleanup_interval"):
            if getattr(config, name) <= 0:
                raise ConfigError(f"simulation.{name} must be positive")
        if config.history_size < 1:
            raise ConfigError("simulation.history_size must be at least 1")
        if config.alert_dedup_window < 0 or config.retention_days < 0:
            raise ConfigError("simulation windows must not be negative")
        return config


@dataclass
class DatabaseConfig:
    backend: str = "sqlite"
    path: str = str(REPO_ROOT / "data" / "agritwin.db")
    mysql: Optional[DBConfig] = None

    @classmethod
    def from_dict(cls, data: dict) -> "DatabaseConfig":
        backend = data.get("backend", "sqlite").lower()
        if backend not in ("sqlite", "mysql"):
            raise ConfigError(f"Unsupported database backend: {backend}")
        path = data.get("path") or str(REPO_ROOT / "data" / "agritwin.db")
        if path != ":memory:" and not Path(path).is_absolute():
            path = str(REPO_ROOT / path)
        return cls(
            backend=backend,
            path=path,
            # Credentials always come from the environment
            mysql=DBConfig.from_env() if backend == "mysql" else None,
        )

    def create_store(self) -> SensorStore:
        """Build the configured store backend."""
        if self.backend == "mysql":
            return MySQLStore(self.mysql or DBConfig.from_env())
        return SQLiteStore(self.path)


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 5001
    queue_size: int = 100

    @classmethod
    def from_dict(cls, data: dict) -> "ServerConfig":
        return cls(
            host=data.get("host", "0.0.0.0"),
            port=int(data.get("port", 5001)),
            queue_size=int(data.get("queue_size", 100)),
        )


@dataclass
class ClientConfig:
    url: str = "http://localhost:5001/ws"
    reconnect_delay: float = 1.0
    max_reconnect_delay: float = 30.0
    max_reconnect_attempts: int = 5

    @classmethod
    def from_dict(cls, data: dict) -> "ClientConfig":
        return cls(
            url=data.get("url", "http://localhost:5001/ws"),
            reconnect_delay=float(data.get("reconnect_delay", 1.0)),
            max_reconnect_delay=float(data.get("max_reconnect_delay", 30.0)),
            max_reconnect_attempts=int(data.get("max_reconnect_attempts", 5)),
        )


@dataclass
class SensorRange:
    unit: str
    thresholds: Thresholds


def _default_ranges() -> Dict[SensorType, SensorRange]:
    return {
        sensor_type: SensorRange(unit=defaults["unit"], thresholds=defaults["thresholds"])
        for sensor_type, defaults in SENSOR_RANGES.items()
    }


@dataclass
class FarmConfig:
    name: str = "AgriTwin Vertical Farm"
    levels: int = 3
    zones_per_level: int = 2
    sensor_types: List[SensorType] = field(default_factory=lambda: list(SensorType))
    crops: List[str] = field(default_factory=lambda: [
        "Lettuce", "Spinach", "Kale", "Arugula", "Basil", "Mint",
    ])
    ranges: Dict[SensorType, SensorRange] = field(default_factory=_default_ranges)

    @classmethod
    def from_dict(cls, data: dict) -> "FarmConfig":
        defaults = cls()
        try:
            sensor_types = [SensorType(t) for t in data.get("sensor_types", [t.value for t in SensorType])]
        except ValueError as e:
            raise ConfigError(f"Unknown sensor type in farm.sensor_types: {e}") from e

        ranges = _default_ranges()
        for type_name, range_data in (data.get("ranges") or {}).items():
            try:
                sensor_type = SensorType(type_name)
            except ValueError as e:
                raise ConfigError(f"Unknown sensor type in farm.ranges: {type_name}") from e
            try:
                thresholds = Thresholds.from_dict(range_data)
            except InvalidThresholdsError as e:
                raise InvalidThresholdsError(f"farm.ranges.{type_name}: {e}") from e
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigError(f"farm.ranges.{type_name} is malformed: {e}") from e
            ranges[sensor_type] = SensorRange(
                unit=range_data.get("unit", ranges[sensor_type].unit),
                thresholds=thresholds,
            )

        config = cls(
            name=data.get("name", defaults.name),
            levels=int(data.get("levels", defaults.levels)),
            zones_per_level=int(data.get("zones_per_level", defaults.zones_per_level)),
            sensor_types=sensor_types,
            crops=list(data.get("crops", defaults.crops)),
            ranges=ranges,
        )
        if config.levels < 1 or config.zones_per_level < 1:
            raise ConfigError("farm.levels and farm.zones_per_level must be at least 1")
        return config


@dataclass
class Config:
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    farm: FarmConfig = field(default_factory=FarmConfig)
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Build and validate the full configuration.

        Raises:
            ConfigError: If any section is invalid.
        """
        return cls(
            simulation=SimulationConfig.from_dict(data.get("simulation") or {}),
            database=DatabaseConfig.from_dict(data.get("database") or {}),
            server=ServerConfig.from_dict(data.get("server") or {}),
            client=ClientConfig.from_dict(data.get("client") or {}),
            mqtt=MQTTConfig.from_dict(data.get("mqtt") or {}),
            farm=FarmConfig.from_dict(data.get("farm") or {}),
            log_level=str(data.get("log_level", "INFO")).upper(),
            log_file=data.get("log_file"),
        )


def load_config(path: Optional[Union[str, Path]] = None) -> Config:
    """Load configuration from YAML with environment variable overrides.

    An explicitly given path must exist. When no path is given and the
    environment's default config file is missing, built-in defaults are
    used.

    Raises:
        ConfigError: If the file is missing or any value is invalid.
    """
    load_dotenv()

    if path is None and not get_config_path().exists():
        logger.warning(f"No config file at {get_config_path()}, using defaults")
        data: dict = {}
    else:
        data = load_yaml_config(path, load_env=False)

    config = Config.from_dict(data)

    if log_level := os.environ.get("LOG_LEVEL"):
        config.log_level = log_level.upper()
    if port := os.environ.get("AGRITWIN_PORT"):
        config.server.port = int(port)
    if mqtt_broker := os.environ.get("MQTT_BROKER"):
        config.mqtt.broker = mqtt_broker

    return config

"""Shared utilities for AgriTwin services."""

from .models import Alert, Reading, Sensor, SensorType, Status, Thresholds, Zone
from .errors import (
    AgriTwinError,
    ConfigError,
    ConnectionClosedError,
    InvalidThresholdsError,
    StorageError,
)
from .database import DBConfig, MySQLStore, SensorStore, SQLiteStore
from .config import load_yaml_config, get_config_path
from .mqtt import MQTTConfig
from .logging import setup_logging

__all__ = [
    "Alert",
    "Reading",
    "Sensor",
    "SensorType",
    "Status",
    "Thresholds",
    "Zone",
    "AgriTwinError",
    "ConfigError",
    "ConnectionClosedError",
    "InvalidThresholdsError",
    "StorageError",
    "DBConfig",
    "MySQLStore",
    "SensorStore",
    "SQLiteStore",
    "load_yaml_config",
    "get_config_path",
    "MQTTConfig",
    "setup_logging",
]

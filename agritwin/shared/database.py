"""Database configuration and storage for zones, sensors, readings and alerts.

Two backends share one set of queries: SQLite (the default, a single
file next to the service) and MySQL through PyMySQL. Queries are written
with ``?`` placeholders and rewritten for backends using another
paramstyle.
"""

import logging
import os
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pymysql
from pymysql.cursors import DictCursor

from .errors import StorageError
from .models import Alert, Reading, Sensor, SensorType, Status, Thresholds, Zone

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


@dataclass
class DBConfig:
    """MySQL connection configuration."""
    host: str
    user: str
    password: str
    database: str
    port: int = 3306

    @classmethod
    def from_env(cls) -> "DBConfig":
        """Create config from environment variables."""
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            user=os.getenv("DB_USER", ""),
            password=os.getenv("DB_PASSWORD", ""),
            database=os.getenv("DB_DATABASE", "agritwin"),
            port=int(os.getenv("DB_PORT", "3306")),
        )


def format_timestamp(value: datetime) -> str:
    """Format a datetime as a naive UTC string that sorts chronologically."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse a stored timestamp back into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class SensorStore:
    """Storage for the farm layout, readings and alerts.

    Subclasses provide the connection, the schema and the paramstyle.
    All access to the shared connection is serialised with a lock so the
    store can be used from worker threads.
    """

    placeholder = "?"
    SCHEMA: Sequence[str] = ()
    DB_ERRORS: Tuple[type, ...] = (Exception,)

    def __init__(self):
        self._connection = None
        self._lock = threading.RLock()

    # -- connection handling -------------------------------------------------

    def _connect(self):
        raise NotImplementedError

    def _is_open(self, connection) -> bool:
        return connection is not None

    def _get_connection(self):
        """Get or create the database connection."""
        if not self._is_open(self._connection):
            self._connection = self._connect()
        return self._connection

    def _sql(self, query: str) -> str:
        if self.placeholder == "?":
            return query
        return query.replace("?", self.placeholder)

    def _query(self, query: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        with self._lock:
            try:
                conn = self._get_connection()
                cursor = conn.cursor()
                try:
                    cursor.execute(self._sql(query), tuple(params))
                    return [dict(row) for row in cursor.fetchall()]
                finally:
                    cursor.close()
            except self.DB_ERRORS as e:
                raise StorageError(f"Query failed: {e}") from e

    def _query_one(self, query: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        rows = self._query(query, params)
        return rows[0] if rows else None

    def _write(self, query: str, params: Sequence[Any] = ()) -> Tuple[Optional[int], int]:
        """Execute a write and commit.

        Returns:
            Tuple of (lastrowid, rowcount).
        """
        with self._lock:
            conn = None
            try:
                conn = self._get_connection()
                cursor = conn.cursor()
                try:
                    cursor.execute(self._sql(query), tuple(params))
                    result = (cursor.lastrowid, cursor.rowcount)
                finally:
                    cursor.close()
                conn.commit()
                return result
            except self.DB_ERRORS as e:
                if conn is not None:
                    try:
                        conn.rollback()
                    except self.DB_ERRORS:
                        logger.debug("Rollback failed after write error")
                raise StorageError(f"Write failed: {e}") from e

    def create_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        for statement in self.SCHEMA:
            self._write(statement)
        logger.info(f"{self.__class__.__name__} schema ready")

    def close(self):
        """Close the database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    # -- farm layout ---------------------------------------------------------

    def zone_count(self) -> int:
        row = self._query_one("SELECT COUNT(*) AS count FROM farm_zones")
        return int(row["count"]) if row else 0

    def add_zone(self, zone: Zone) -> None:
        self._write(
            """
            INSERT INTO farm_zones (id, name, level, area, crop_type, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (zone.id, zone.name, zone.level, zone.area, zone.crop_type,
             format_timestamp(datetime.now(timezone.utc))),
        )

    def list_zones(self) -> List[Zone]:
        rows = self._query(
            "SELECT id, name, level, area, crop_type FROM farm_zones ORDER BY level, id"
        )
        return [
            Zone(
                id=row["id"],
                name=row["name"],
                level=int(row["level"]),
                area=float(row["area"]),
                crop_type=row["crop_type"],
            )
            for row in rows
        ]

    def add_sensor(self, sensor: Sensor) -> None:
        t = sensor.thresholds
        self._write(
            """
            INSERT INTO sensors (
                id, name, type, zone_id, unit,
                min_normal, max_normal, min_warning, max_warning, min_critical, max_critical,
                is_active, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                sensor.id, sensor.name, sensor.type.value, sensor.zone_id, sensor.unit,
                t.min_normal, t.max_normal, t.min_warning, t.max_warning,
                t.min_critical, t.max_critical,
                1 if sensor.is_active else 0,
                format_timestamp(datetime.now(timezone.utc)),
            ),
        )

    _SENSOR_SELECT = """
        SELECT s.id, s.name, s.type, s.zone_id, s.unit,
               s.min_normal, s.max_normal, s.min_warning, s.max_warning,
               s.min_critical, s.max_critical, s.is_active, z.level
        FROM sensors s
        LEFT JOIN farm_zones z ON s.zone_id = z.id
    """

    @staticmethod
    def _sensor_from_row(row: Dict[str, Any]) -> Sensor:
        return Sensor(
            id=row["id"],
            name=row["name"],
            type=SensorType(row["type"]),
            zone_id=row["zone_id"],
            unit=row["unit"],
            thresholds=Thresholds(
                min_normal=float(row["min_normal"]),
                max_normal=float(row["max_normal"]),
                min_warning=float(row["min_warning"]),
                max_warning=float(row["max_warning"]),
                min_critical=float(row["min_critical"]),
                max_critical=float(row["max_critical"]),
            ),
            level=int(row["level"] or 1),
            is_active=bool(row["is_active"]),
        )

    def get_sensors(self, active_only: bool = True) -> List[Sensor]:
        """Get sensors, by default only the active ones."""
        query = self._SENSOR_SELECT
        if active_only:
            query += " WHERE s.is_active = 1"
        query += " ORDER BY s.id"
        return [self._sensor_from_row(row) for row in self._query(query)]

    def get_sensor(self, sensor_id: str) -> Optional[Sensor]:
        row = self._query_one(self._SENSOR_SELECT + " WHERE s.id = ?", (sensor_id,))
        return self._sensor_from_row(row) if row else None

    def set_sensor_active(self, sensor_id: str, is_active: bool) -> bool:
        """Activate or deactivate a sensor. Sensors are never deleted.

        Returns:
            True if the sensor exists.
        """
        if self.get_sensor(sensor_id) is None:
            return False
        self._write(
            "UPDATE sensors SET is_active = ? WHERE id = ?",
            (1 if is_active else 0, sensor_id),
        )
        return True

    def update_thresholds(self, sensor_id: str, thresholds: Thresholds) -> bool:
        """Replace a sensor's thresholds after validating their ordering.

        Raises:
            InvalidThresholdsError: If the thresholds are out of order.
        """
        thresholds.validate()
        if self.get_sensor(sensor_id) is None:
            return False
        self._write(
            """
            UPDATE sensors
            SET min_normal = ?, max_normal = ?, min_warning = ?, max_warning = ?,
                min_critical = ?, max_critical = ?
            WHERE id = ?
            """,
            (
                thresholds.min_normal, thresholds.max_normal,
                thresholds.min_warning, thresholds.max_warning,
                thresholds.min_critical, thresholds.max_critical,
                sensor_id,
            ),
        )
        return True

    def count_active_sensors(self) -> int:
        row = self._query_one("SELECT COUNT(*) AS count FROM sensors WHERE is_active = 1")
        return int(row["count"]) if row else 0

    # -- readings ------------------------------------------------------------

    def insert_reading(self, reading: Reading) -> Reading:
        """Append a reading.

        Returns:
            The reading with its assigned id.
        """
        row_id, _ = self._write(
            """
            INSERT INTO sensor_data (sensor_id, value, unit, status, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (reading.sensor_id, reading.value, reading.unit, reading.status.value,
             format_timestamp(reading.timestamp)),
        )
        return Reading(
            sensor_id=reading.sensor_id,
            value=reading.value,
            unit=reading.unit,
            status=reading.status,
            timestamp=reading.timestamp,
            id=row_id,
            zone_id=reading.zone_id,
        )

    @staticmethod
    def _reading_from_row(row: Dict[str, Any]) -> Reading:
        return Reading(
            id=int(row["id"]),
            sensor_id=row["sensor_id"],
            value=float(row["value"]),
            unit=row["unit"],
            status=Status(row["status"]),
            timestamp=parse_timestamp(row["timestamp"]),
            zone_id=row.get("zone_id"),
        )

    def get_latest_readings(self, zone_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Latest reading per active sensor, joined with sensor details.

        Args:
            zone_id: Restrict to one zone.
        """
        conditions = ["s.is_active = 1"]
        params: List[Any] = []
        if zone_id:
            conditions.append("s.zone_id = ?")
            params.append(zone_id)

        where_clause = " AND ".join(conditions)
        rows = self._query(
            f"""
            SELECT sd.id, sd.sensor_id, sd.value, sd.unit, sd.status, sd.timestamp,
                   s.name AS sensor_name, s.type AS sensor_type, s.zone_id
            FROM sensor_data sd
            JOIN sensors s ON sd.sensor_id = s.id
            WHERE sd.id IN (SELECT MAX(id) FROM sensor_data GROUP BY sensor_id)
              AND {where_clause}
            ORDER BY s.zone_id, s.type
            """,
            params,
        )
        for row in rows:
            row["value"] = float(row["value"])
            row["timestamp"] = parse_timestamp(row["timestamp"]).isoformat()
        return rows

    def get_sensor_history(
        self,
        sensor_id: str,
        since: datetime,
        limit: int = 1000,
    ) -> List[Reading]:
        """Readings for a sensor newer than ``since``, newest first."""
        rows = self._query(
            """
            SELECT id, sensor_id, value, unit, status, timestamp
            FROM sensor_data
            WHERE sensor_id = ? AND timestamp > ?
            ORDER BY timestamp DESC, id DESC
            LIMIT ?
            """,
            (sensor_id, format_timestamp(since), limit),
        )
        return [self._reading_from_row(row) for row in rows]

    def get_reading(self, reading_id: int) -> Optional[Reading]:
        row = self._query_one(
            "SELECT id, sensor_id, value, unit, status, timestamp FROM sensor_data WHERE id = ?",
            (reading_id,),
        )
        return self._reading_from_row(row) if row else None

    def purge_readings(self, before: datetime) -> int:
        """Delete readings older than ``before``.

        Returns:
            Number of readings deleted.
        """
        _, deleted = self._write(
            "DELETE FROM sensor_data WHERE timestamp < ?",
            (format_timestamp(before),),
        )
        return max(deleted, 0)

    # -- alerts --------------------------------------------------------------

    @staticmethod
    def _alert_from_row(row: Dict[str, Any]) -> Alert:
        extra = {
            key: row[key]
            for key in ("sensor_name", "sensor_type", "zone_id", "zone_name")
            if key in row
        }
        return Alert(
            id=int(row["id"]),
            sensor_id=row["sensor_id"],
            message=row["message"],
            severity=Status(row["severity"]),
            is_resolved=bool(row["is_resolved"]),
            created_at=parse_timestamp(row["created_at"]),
            resolved_at=parse_timestamp(row["resolved_at"]),
            extra=extra,
        )

    def find_open_alert(
        self,
        sensor_id: str,
        severity: Status,
        since: datetime,
    ) -> Optional[Alert]:
        """Find an unresolved alert for a sensor and severity created after ``since``."""
        row = self._query_one(
            """
            SELECT id, sensor_id, message, severity, is_resolved, created_at, resolved_at
            FROM alerts
            WHERE sensor_id = ? AND severity = ? AND is_resolved = 0 AND created_at > ?
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (sensor_id, severity.value, format_timestamp(since)),
        )
        return self._alert_from_row(row) if row else None

    def create_alert(self, alert: Alert) -> Alert:
        row_id, _ = self._write(
            """
            INSERT INTO alerts (sensor_id, message, severity, is_resolved, created_at)
            VALUES (?, ?, ?, 0, ?)
            """,
            (alert.sensor_id, alert.message, alert.severity.value,
             format_timestamp(alert.created_at)),
        )
        alert.id = row_id
        return alert

    def resolve_alert(self, alert_id: int, resolved_at: Optional[datetime] = None) -> bool:
        """Mark an alert resolved.

        Returns:
            True if an unresolved alert with that id existed.
        """
        resolved_at = resolved_at or datetime.now(timezone.utc)
        _, updated = self._write(
            "UPDATE alerts SET is_resolved = 1, resolved_at = ? WHERE id = ? AND is_resolved = 0",
            (format_timestamp(resolved_at), alert_id),
        )
        return updated > 0

    def get_alert(self, alert_id: int) -> Optional[Alert]:
        row = self._query_one(
            """
            SELECT id, sensor_id, message, severity, is_resolved, created_at, resolved_at
            FROM alerts WHERE id = ?
            """,
            (alert_id,),
        )
        return self._alert_from_row(row) if row else None

    def get_unresolved_alerts(self, limit: int = 20) -> List[Alert]:
        """Most recent unresolved alerts joined with sensor and zone names."""
        rows = self._query(
            """
            SELECT a.id, a.sensor_id, a.message, a.severity, a.is_resolved,
                   a.created_at, a.resolved_at,
                   s.name AS sensor_name, s.type AS sensor_type,
                   z.id AS zone_id, z.name AS zone_name
            FROM alerts a
            JOIN sensors s ON a.sensor_id = s.id
            LEFT JOIN farm_zones z ON s.zone_id = z.id
            WHERE a.is_resolved = 0
            ORDER BY a.created_at DESC, a.id DESC
            LIMIT ?
            """,
            (limit,),
        )
        return [self._alert_from_row(row) for row in rows]

    def count_unresolved_alerts(self) -> int:
        row = self._query_one("SELECT COUNT(*) AS count FROM alerts WHERE is_resolved = 0")
        return int(row["count"]) if row else 0


class SQLiteStore(SensorStore):
    """SQLite-backed store (default backend)."""

    DB_ERRORS = (sqlite3.Error,)
    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS farm_zones (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            level INTEGER NOT NULL,
            area REAL NOT NULL DEFAULT 25,
            crop_type TEXT,
            created_at TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS sensors (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            type TEXT NOT NULL,
            zone_id TEXT REFERENCES farm_zones (id),
            unit TEXT NOT NULL,
            min_normal REAL NOT NULL,
            max_normal REAL NOT NULL,
            min_warning REAL NOT NULL,
            max_warning REAL NOT NULL,
            min_critical REAL NOT NULL,
            max_critical REAL NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS sensor_data (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sensor_id TEXT NOT NULL REFERENCES sensors (id),
            value REAL NOT NULL,
            unit TEXT NOT NULL,
            status TEXT NOT NULL CHECK (status IN ('normal', 'warning', 'critical')),
            timestamp TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS alerts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sensor_id TEXT NOT NULL REFERENCES sensors (id),
            message TEXT NOT NULL,
            severity TEXT NOT NULL CHECK (severity IN ('info', 'warning', 'critical')),
            is_resolved INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            resolved_at TEXT
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_sensor_data_sensor_id ON sensor_data (sensor_id)",
        "CREATE INDEX IF NOT EXISTS idx_sensor_data_timestamp ON sensor_data (timestamp)",
        "CREATE INDEX IF NOT EXISTS idx_alerts_sensor_id ON alerts (sensor_id, severity, is_resolved)",
        "CREATE INDEX IF NOT EXISTS idx_sensors_zone_id ON sensors (zone_id)",
    )

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = str(path)

    def _connect(self) -> sqlite3.Connection:
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        if self.path != ":memory:":
            # Readers in other processes (the display) never block the writer
            conn.execute("PRAGMA journal_mode = WAL")
        return conn


class MySQLStore(SensorStore):
    """MySQL-backed store using PyMySQL."""

    placeholder = "%s"
    DB_ERRORS = (pymysql.MySQLError,)
    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS farm_zones (
            id VARCHAR(64) PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            level INT NOT NULL,
            area DOUBLE NOT NULL DEFAULT 25,
            crop_type VARCHAR(100),
            created_at DATETIME(6) NOT NULL
        ) ENGINE=InnoDB
        """,
        """
        CREATE TABLE IF NOT EXISTS sensors (
            id VARCHAR(64) PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            type VARCHAR(32) NOT NULL,
            zone_id VARCHAR(64),
            unit VARCHAR(16) NOT NULL,
            min_normal DOUBLE NOT NULL,
            max_normal DOUBLE NOT NULL,
            min_warning DOUBLE NOT NULL,
            max_warning DOUBLE NOT NULL,
            min_critical DOUBLE NOT NULL,
            max_critical DOUBLE NOT NULL,
            is_active TINYINT(1) NOT NULL DEFAULT 1,
            created_at DATETIME(6) NOT NULL,
            INDEX idx_sensors_zone_id (zone_id),
            FOREIGN KEY (zone_id) REFERENCES farm_zones (id)
        ) ENGINE=InnoDB
        """,
        """
        CREATE TABLE IF NOT EXISTS sensor_data (
            id BIGINT AUTO_INCREMENT PRIMARY KEY,
            sensor_id VARCHAR(64) NOT NULL,
            value DOUBLE NOT NULL,
            unit VARCHAR(16) NOT NULL,
            status ENUM('normal', 'warning', 'critical') NOT NULL,
            timestamp DATETIME(6) NOT NULL,
            INDEX idx_sensor_data_sensor_id (sensor_id),
            INDEX idx_sensor_data_timestamp (timestamp),
            FOREIGN KEY (sensor_id) REFERENCES sensors (id)
        ) ENGINE=InnoDB
        """,
        """
        CREATE TABLE IF NOT EXISTS alerts (
            id BIGINT AUTO_INCREMENT PRIMARY KEY,
            sensor_id VARCHAR(64) NOT NULL,
            message VARCHAR(512) NOT NULL,
            severity ENUM('info', 'warning', 'critical') NOT NULL,
            is_resolved TINYINT(1) NOT NULL DEFAULT 0,
            created_at DATETIME(6) NOT NULL,
            resolved_at DATETIME(6) NULL,
            INDEX idx_alerts_sensor_id (sensor_id, severity, is_resolved),
            FOREIGN KEY (sensor_id) REFERENCES sensors (id)
        ) ENGINE=InnoDB
        """,
    )

    def __init__(self, db_config: DBConfig):
        super().__init__()
        self.db_config = db_config

    def _is_open(self, connection) -> bool:
        return connection is not None and connection.open

    def _connect(self) -> pymysql.Connection:
        return pymysql.connect(
            host=self.db_config.host,
            port=self.db_config.port,
            user=self.db_config.user,
            password=self.db_config.password,
            database=self.db_config.database,
            cursorclass=DictCursor,
            charset="utf8mb4",
        )

"""Tests for the SQLite store and the MySQL query adaptation."""

from datetime import datetime, timedelta, timezone

import pytest

from agritwin.shared.database import (
    DBConfig,
    MySQLStore,
    format_timestamp,
    parse_timestamp,
)
from agritwin.shared.errors import InvalidThresholdsError, StorageError
from agritwin.shared.models import Alert, SensorType, Status, Thresholds
from agritwin.shared.settings import FarmConfig, SensorRange
from agritwin.simulator.seed import build_layout, seed_farm, sync_thresholds
from tests.helpers import make_reading

T0 = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_seed_creates_default_layout(store):
    farm = FarmConfig()
    assert seed_farm(store, farm) == 30
    assert store.zone_count() == 6
    zones = store.list_zones()
    assert zones[0].id == "zone-1-1"
    assert zones[0].name == "Level 1 Zone A"
    assert zones[0].crop_type == "Lettuce"
    assert {zone.level for zone in zones} == {1, 2, 3}


def test_seed_is_skipped_when_layout_exists(seeded_store, farm):
    assert seed_farm(seeded_store, farm) == 0
    assert len(seeded_store.get_sensors()) == 5


def test_sync_thresholds_applies_changed_ranges(seeded_store, farm):
    assert sync_thresholds(seeded_store, farm) == []

    seeded_store.set_sensor_active("zone-1-1-temperature", False)
    narrower = Thresholds(21, 27, 19, 29, 16, 34)
    farm.ranges[SensorType.TEMPERATURE] = SensorRange(unit="°C", thresholds=narrower)

    updated = sync_thresholds(seeded_store, farm)

    assert [sensor.id for sensor in updated] == ["zone-1-1-temperature"]
    assert updated[0].thresholds == narrower
    assert seeded_store.get_sensor("zone-1-1-temperature").thresholds == narrower
    assert seeded_store.get_sensor("zone-1-1-humidity").thresholds == farm.ranges[SensorType.HUMIDITY].thresholds
    assert sync_thresholds(seeded_store, farm) == []


def test_sensor_round_trip(seeded_store):
    sensor = seeded_store.get_sensor("zone-1-1-co2")
    assert sensor.unit == "ppm"
    assert sensor.thresholds == Thresholds(800, 1200, 600, 1300, 300, 1500)
    assert sensor.level == 1
    assert sensor.is_active
    assert seeded_store.get_sensor("missing") is None


def test_deactivated_sensors_are_excluded(seeded_store):
    assert seeded_store.set_sensor_active("zone-1-1-light", False)
    active_ids = {sensor.id for sensor in seeded_store.get_sensors()}
    assert "zone-1-1-light" not in active_ids
    assert len(seeded_store.get_sensors(active_only=False)) == 5
    assert seeded_store.count_active_sensors() == 4
    assert not seeded_store.set_sensor_active("missing", True)


def test_update_thresholds_validates(seeded_store):
    with pytest.raises(InvalidThresholdsError):
        Thresholds(30, 20, 15, 35, 10, 40)

    new = Thresholds(21, 27, 19, 29, 16, 34)
    assert seeded_store.update_thresholds("zone-1-1-temperature", new)
    assert seeded_store.get_sensor("zone-1-1-temperature").thresholds == new


def test_insert_reading_assigns_id_and_keeps_utc(seeded_store):
    sensor = seeded_store.get_sensor("zone-1-1-temperature")
    stored = seeded_store.insert_reading(make_reading(sensor, 24.5, Status.NORMAL, T0))
    assert stored.id is not None

    loaded = seeded_store.get_reading(stored.id)
    assert loaded.value == 24.5
    assert loaded.status == Status.NORMAL
    assert loaded.timestamp == T0
    assert loaded.timestamp.tzinfo is not None


def test_insert_reading_for_unknown_sensor_raises_storage_error(seeded_store):
    sensor = seeded_store.get_sensor("zone-1-1-temperature")
    sensor.id = "no-such-sensor"
    with pytest.raises(StorageError):
        seeded_store.insert_reading(make_reading(sensor, 24.5, Status.NORMAL, T0))


def test_latest_readings_one_per_sensor(seeded_store):
    temp = seeded_store.get_sensor("zone-1-1-temperature")
    co2 = seeded_store.get_sensor("zone-1-1-co2")
    seeded_store.insert_reading(make_reading(temp, 24.0, Status.NORMAL, T0))
    seeded_store.insert_reading(make_reading(temp, 24.3, Status.NORMAL, T0 + timedelta(seconds=2)))
    seeded_store.insert_reading(make_reading(co2, 950.0, Status.NORMAL, T0))

    latest = {row["sensor_id"]: row for row in seeded_store.get_latest_readings()}
    assert set(latest) == {temp.id, co2.id}
    assert latest[temp.id]["value"] == 24.3
    assert latest[temp.id]["sensor_type"] == "temperature"
    assert latest[temp.id]["zone_id"] == "zone-1-1"
    assert seeded_store.get_latest_readings(zone_id="zone-9-9") == []


def test_history_is_newest_first_and_bounded_by_since(seeded_store):
    temp = seeded_store.get_sensor("zone-1-1-temperature")
    for i in range(5):
        seeded_store.insert_reading(
            make_reading(temp, 20.0 + i, Status.NORMAL, T0 + timedelta(minutes=i))
        )

    history = seeded_store.get_sensor_history(temp.id, since=T0 + timedelta(seconds=90))
    assert [reading.value for reading in history] == [24.0, 23.0, 22.0]


def test_purge_readings(seeded_store):
    temp = seeded_store.get_sensor("zone-1-1-temperature")
    seeded_store.insert_reading(make_reading(temp, 20.0, Status.NORMAL, T0 - timedelta(days=40)))
    seeded_store.insert_reading(make_reading(temp, 21.0, Status.NORMAL, T0))
    assert seeded_store.purge_readings(T0 - timedelta(days=30)) == 1
    assert len(seeded_store.get_sensor_history(temp.id, T0 - timedelta(days=60))) == 1


def test_alert_lifecycle(seeded_store):
    alert = seeded_store.create_alert(Alert(
        sensor_id="zone-1-1-humidity",
        message="humidity high",
        severity=Status.WARNING,
        created_at=T0,
    ))
    assert alert.id is not None

    found = seeded_store.find_open_alert("zone-1-1-humidity", Status.WARNING, T0 - timedelta(minutes=1))
    assert found.id == alert.id
    assert seeded_store.find_open_alert("zone-1-1-humidity", Status.CRITICAL, T0 - timedelta(minutes=1)) is None

    unresolved = seeded_store.get_unresolved_alerts()
    assert unresolved[0].extra["zone_name"] == "Level 1 Zone A"
    assert unresolved[0].to_dict()["sensor_type"] == "humidity"

    assert seeded_store.resolve_alert(alert.id, T0 + timedelta(minutes=1))
    assert not seeded_store.resolve_alert(alert.id)
    resolved = seeded_store.get_alert(alert.id)
    assert resolved.is_resolved
    assert resolved.resolved_at == T0 + timedelta(minutes=1)
    assert seeded_store.count_unresolved_alerts() == 0


def test_timestamp_format_sorts_and_round_trips():
    local = datetime(2026, 6, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert format_timestamp(local) == "2026-06-01 12:00:00.000000"
    assert parse_timestamp(format_timestamp(local)) == local
    assert parse_timestamp(None) is None


def test_layout_zone_names_cycle_crops():
    zones = build_layout(FarmConfig(levels=2, zones_per_level=3, crops=["Basil"]))
    assert [zone.id for zone in zones][:3] == ["zone-1-1", "zone-1-2", "zone-1-3"]
    assert zones[2].name == "Level 1 Zone C"
    assert {zone.crop_type for zone in zones} == {"Basil"}


def test_mysql_store_rewrites_placeholders():
    store = MySQLStore(DBConfig(host="db", user="u", password="p", database="agritwin"))
    assert store._sql("SELECT * FROM sensors WHERE id = ? AND is_active = ?") == (
        "SELECT * FROM sensors WHERE id = %s AND is_active = %s"
    )

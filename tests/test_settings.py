"""Tests for configuration loading and validation."""

import pytest

from agritwin.shared.config import get_config_path, load_yaml_config
from agritwin.shared.errors import ConfigError, InvalidThresholdsError
from agritwin.shared.models import SensorType, Thresholds
from agritwin.shared.settings import Config, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ("AGRITWIN_ENV", "LOG_LEVEL", "AGRITWIN_PORT", "MQTT_BROKER"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AGRITWIN_CONFIG_DIR", str(tmp_path))
    # Keep any developer .env out of the way
    monkeypatch.chdir(tmp_path)


def write_config(tmp_path, text, name="config-agritwin.yaml"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_when_no_config_file(tmp_path):
    config = load_config()
    assert config.simulation.tick_interval == 2.0
    assert config.simulation.alert_dedup_window == 600
    assert config.server.port == 5001
    assert config.database.backend == "sqlite"
    assert not config.mqtt.enabled
    assert config.farm.levels == 3


def test_explicit_missing_path_is_an_error(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.yaml")


def test_load_from_environment_file(tmp_path, monkeypatch):
    monkeypatch.setenv("AGRITWIN_ENV", "test")
    write_config(tmp_path, """
log_level: debug
simulation:
  tick_interval: 0.5
  seed: 42
server:
  port: 6000
farm:
  levels: 2
  ranges:
    co2:
      min_normal: 700
      max_normal: 1100
      min_warning: 600
      max_warning: 1300
      min_critical: 300
      max_critical: 1500
""", name="config-test.yaml")

    assert get_config_path() == tmp_path / "config-test.yaml"
    config = load_config()
    assert config.log_level == "DEBUG"
    assert config.simulation.tick_interval == 0.5
    assert config.simulation.seed == 42
    assert config.server.port == 6000
    assert config.farm.levels == 2
    assert config.farm.ranges[SensorType.CO2].thresholds.min_normal == 700
    assert config.farm.ranges[SensorType.CO2].unit == "ppm"


def test_environment_overrides(tmp_path, monkeypatch):
    write_config(tmp_path, "server:\n  port: 6000\n")
    monkeypatch.setenv("AGRITWIN_PORT", "7000")
    monkeypatch.setenv("LOG_LEVEL", "warning")
    monkeypatch.setenv("MQTT_BROKER", "broker.local")
    config = load_config()
    assert config.server.port == 7000
    assert config.log_level == "WARNING"
    assert config.mqtt.broker == "broker.local"


def test_out_of_order_thresholds_are_rejected():
    with pytest.raises(InvalidThresholdsError):
        Config.from_dict({"farm": {"ranges": {"temperature": {
            "normal": {"min": 20, "max": 28},
            "warning": {"min": 22, "max": 30},
            "critical": {"min": 15, "max": 35},
        }}}})


@pytest.mark.parametrize("data", [
    {"database": {"backend": "postgres"}},
    {"simulation": {"tick_interval": 0}},
    {"simulation": {"history_size": 0}},
    {"farm": {"levels": 0}},
    {"farm": {"sensor_types": ["temperature", "ph"]}},
    {"farm": {"ranges": {"ph": {}}}},
])
def test_invalid_sections(data):
    with pytest.raises(ConfigError):
        Config.from_dict(data)


def test_thresholds_from_flat_and_nested_forms():
    flat = Thresholds.from_dict({
        "min_normal": 20, "max_normal": 28, "min_warning": 18,
        "max_warning": 30, "min_critical": 15, "max_critical": 35,
    })
    nested = Thresholds.from_dict({
        "normal": {"min": 20, "max": 28},
        "warning": {"min": 18, "max": 30},
        "critical": {"min": 15, "max": 35},
    })
    assert flat == nested
    assert flat.to_dict()["max_critical"] == 35
    with pytest.raises(InvalidThresholdsError):
        Thresholds.from_dict({"min_normal": 1})


def test_yaml_must_be_a_mapping(tmp_path):
    path = write_config(tmp_path, "- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_yaml_config(path)


def test_invalid_yaml(tmp_path):
    path = write_config(tmp_path, "server: [unclosed\n")
    with pytest.raises(ConfigError):
        load_yaml_config(path)


def test_relative_sqlite_path_is_anchored_at_repo_root():
    config = Config.from_dict({"database": {"path": "data/custom.db"}})
    assert config.database.path.endswith("data/custom.db")
    assert config.database.create_store().path == config.database.path

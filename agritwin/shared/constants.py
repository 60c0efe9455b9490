"""Farm-wide constants: default sensor ranges, intervals and channel names."""

from .models import SensorType, Thresholds

# Default bands per sensor type, used when seeding and when the
# configuration file does not override a type.
SENSOR_RANGES = {
    SensorType.TEMPERATURE: {
        "unit": "°C",
        "thresholds": Thresholds(20, 28, 18, 30, 15, 35),
    },
    SensorType.HUMIDITY: {
        "unit": "%",
        "thresholds": Thresholds(60, 75, 50, 80, 30, 90),
    },
    SensorType.SOIL_MOISTURE: {
        "unit": "%",
        "thresholds": Thresholds(40, 70, 30, 75, 20, 80),
    },
    SensorType.LIGHT: {
        "unit": "lux",
        "thresholds": Thresholds(20000, 40000, 15000, 45000, 1000, 50000),
    },
    SensorType.CO2: {
        "unit": "ppm",
        "thresholds": Thresholds(800, 1200, 600, 1300, 300, 1500),
    },
}

SENSOR_DISPLAY_NAMES = {
    SensorType.TEMPERATURE: "Temperature",
    SensorType.HUMIDITY: "Humidity",
    SensorType.SOIL_MOISTURE: "Soil Moisture",
    SensorType.LIGHT: "Light",
    SensorType.CO2: "CO2",
}

# Intervals in seconds
SENSOR_DATA_INTERVAL = 2.0
ALERTS_CHECK_INTERVAL = 5.0
DATABASE_CLEANUP_INTERVAL = 3600.0
DATA_RETENTION_DAYS = 30

# No second alert of the same severity for the same sensor within this window
ALERT_DEDUP_WINDOW = 600.0

# Trend history kept per sensor
HISTORY_SIZE = 50

# Real-time channels
CHANNEL_SENSOR_DATA = "sensor-data"
CHANNEL_ALERTS = "alerts"
CHANNEL_SYSTEM = "system"


def zone_channel(zone_id: str) -> str:
    return f"zone:{zone_id}"


def sensor_channel(sensor_id: str) -> str:
    return f"sensor:{sensor_id}"

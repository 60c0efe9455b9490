"""Exception types shared across AgriTwin services."""


class AgriTwinError(Exception):
    """Base class for all AgriTwin errors."""

    pass


class ConfigError(AgriTwinError):
    """Raised when configuration cannot be loaded or is invalid."""

    pass


class InvalidThresholdsError(ConfigError):
    """Raised when a sensor's thresholds violate the band ordering."""

    pass


class StorageError(AgriTwinError):
    """Raised when the readings store cannot complete an operation."""

    pass


class ConnectionClosedError(AgriTwinError):
    """Raised when subscribing on a connection that has already closed."""

    pass

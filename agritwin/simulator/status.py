"""Status classification for generated readings."""

from agritwin.shared.models import Status, Thresholds


def calculate_status(value: float, thresholds: Thresholds) -> Status:
    """Classify a value against a sensor's bands.

    Both bands are inclusive: a value exactly on a normal bound is normal,
    a value exactly on a warning bound is a warning. Anything outside the
    warning band is critical.
    """
    if thresholds.min_normal <= value <= thresholds.max_normal:
        return Status.NORMAL
    if thresholds.min_warning <= value <= thresholds.max_warning:
        return Status.WARNING
    return Status.CRITICAL

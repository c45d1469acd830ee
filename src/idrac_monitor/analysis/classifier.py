"""Temperature classification against warning and critical thresholds.

Thresholds use >= comparison: a reading exactly at a threshold is already
in that severity.
"""

from dataclasses import dataclass

from idrac_monitor.models.enums import Severity


def classify(value: float, warning_threshold: float, critical_threshold: float) -> Severity:
    """Classify a reading.

    Args:
        value: Temperature in Celsius
        warning_threshold: Lowest WARNING temperature
        critical_threshold: Lowest CRITICAL temperature

    Returns:
        CRITICAL if value >= critical_threshold, else WARNING if
        value >= warning_threshold, else NORMAL
    """
    if value >= critical_threshold:
        return Severity.CRITICAL
    if value >= warning_threshold:
        return Severity.WARNING
    return Severity.NORMAL


@dataclass(frozen=True)
class Thresholds:
    """Configured temperature thresholds in Celsius.

    Attributes:
        warning: Lowest WARNING temperature
        critical: Lowest CRITICAL temperature
    """

    warning: float = 25.0
    critical: float = 30.0

    def __post_init__(self) -> None:
        if self.warning > self.critical:
            raise ValueError(
                f"warning threshold ({self.warning}) must not exceed "
                f"critical threshold ({self.critical})"
            )

    def classify(self, value: float) -> Severity:
        return classify(value, self.warning, self.critical)


DEFAULT_THRESHOLDS = Thresholds()

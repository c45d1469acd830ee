"""Shared enumerations for the iDRAC Monitor models."""

from enum import Enum


class Severity(str, Enum):
    """Classification of a temperature reading.

    Ordered NORMAL < WARNING < CRITICAL; comparison operators follow that
    order rather than the string values.
    """

    NORMAL = "NORMAL"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def is_abnormal(self) -> bool:
        return self is not Severity.NORMAL

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {
    Severity.NORMAL: 0,
    Severity.WARNING: 1,
    Severity.CRITICAL: 2,
}

# Persisted last_status before any reading has been observed
UNKNOWN_STATUS = "UNKNOWN"


class AlertKind(str, Enum):
    """Reason an alert notification is sent."""

    STATUS_CHANGE = "STATUS_CHANGE"
    PERSISTENT_WARNING = "PERSISTENT_WARNING"
    PERSISTENT_CRITICAL = "PERSISTENT_CRITICAL"

    @property
    def is_persistent(self) -> bool:
        return self is not AlertKind.STATUS_CHANGE


class MessageKind(str, Enum):
    """Kind of outgoing notification, used in subjects and bodies."""

    ALERT = "Alert"
    HOURLY_REPORT = "Hourly Report"
    REPORT = "Report"
    TEST = "Test"

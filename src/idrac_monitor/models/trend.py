"""Hourly aggregate bucket model."""

from dataclasses import dataclass
from typing import Any, Dict

from .enums import Severity


@dataclass(frozen=True)
class AggregateBucket:
    """Min/max/mean/count rollup of the readings within one hour."""

    min: float
    max: float
    mean: float
    count: int
    last_status: Severity

    @classmethod
    def seed(cls, value: float, status: Severity) -> "AggregateBucket":
        """Bucket holding a single reading."""
        return cls(min=value, max=value, mean=value, count=1, last_status=status)

    def add(self, value: float, status: Severity) -> "AggregateBucket":
        """Return a new bucket with one more reading folded in.

        The status of the latest reading wins.
        """
        return AggregateBucket(
            min=min(self.min, value),
            max=max(self.max, value),
            mean=(self.mean * self.count + value) / (self.count + 1),
            count=self.count + 1,
            last_status=status,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "count": self.count,
            "last_status": self.last_status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AggregateBucket":
        """Parse a persisted bucket.

        Raises:
            KeyError, TypeError, ValueError: If the dict is malformed
        """
        return cls(
            min=float(data["min"]),
            max=float(data["max"]),
            mean=float(data["mean"]),
            count=int(data["count"]),
            last_status=Severity(data["last_status"]),
        )

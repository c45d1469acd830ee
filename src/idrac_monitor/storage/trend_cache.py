"""Hour-bucketed aggregate cache used for trend graphs.

Buckets are keyed ``YYYY-MM-DD HH`` in the configured timezone and kept in
insertion order. Once more than ``retention`` buckets exist the oldest are
evicted first.
"""

import json
import shutil
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog

from idrac_monitor.exceptions import PersistenceError
from idrac_monitor.models.enums import Severity
from idrac_monitor.models.trend import AggregateBucket
from idrac_monitor.storage.locking import InterProcessLock
from idrac_monitor.utils.timestamps import get_zone, hour_key

log = structlog.get_logger()

DEFAULT_RETENTION = 72  # 3 days of hourly buckets


class TrendCache:
    """Bounded, insertion-ordered map of hourly aggregate buckets."""

    CACHE_FILENAME = "trend_cache.json"
    LOCK_FILENAME = ".trend_cache.lock"

    def __init__(
        self,
        cache_dir: Optional[Union[str, Path]] = None,
        retention: int = DEFAULT_RETENTION,
        timezone: str = "UTC",
    ) -> None:
        """Initialize the cache.

        Args:
            cache_dir: Directory for the JSON snapshot (None = memory only)
            retention: Maximum number of hourly buckets kept
            timezone: Zone used to truncate timestamps to hours
        """
        if retention < 1:
            raise ValueError("retention must be at least 1 bucket")
        self.cache_file = Path(cache_dir) / self.CACHE_FILENAME if cache_dir is not None else None
        self.retention = retention
        self.timezone = timezone
        self._tz = get_zone(timezone)
        self._buckets: Dict[str, AggregateBucket] = {}
        self._lock = threading.Lock()
        self._file_lock = (
            InterProcessLock(self.cache_file.parent / self.LOCK_FILENAME)
            if self.cache_file is not None
            else None
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def update(self, value: float, status: Severity, at: datetime) -> None:
        """Fold one reading into the bucket of its hour, then evict.

        Not idempotent: every call counts as a reading.
        """
        key = hour_key(at, self._tz)
        with self._lock:
            existing = self._buckets.get(key)
            if existing is None:
                self._buckets[key] = AggregateBucket.seed(value, status)
            else:
                self._buckets[key] = existing.add(value, status)
            self._evict()

    def record(self, value: float, status: Severity, at: datetime) -> None:
        """Fold one reading in and persist it.

        With a snapshot file the cycle is reload -> update -> save under an
        inter-process lock, so readings recorded by other processes sharing
        the file are kept. The in-memory buckets always receive the reading,
        even when the file cannot be locked or written.

        Raises:
            PersistenceError: If the snapshot cannot be locked or written
        """
        if self._file_lock is None:
            self.update(value, status, at)
            return

        applied = False
        try:
            with self._file_lock.acquire():
                self.load()
                self.update(value, status, at)
                applied = True
                self.save()
        finally:
            if not applied:
                self.update(value, status, at)

    def snapshot(self) -> List[Tuple[str, AggregateBucket]]:
        """Point-in-time copy of all buckets, oldest first."""
        with self._lock:
            return list(self._buckets.items())

    def graph_data(self) -> Dict[str, List[Any]]:
        """Series for trend rendering: labels, mean temperatures, statuses."""
        labels: List[str] = []
        temperatures: List[float] = []
        statuses: List[str] = []

        for key, bucket in self.snapshot():
            labels.append(datetime.strptime(key, "%Y-%m-%d %H").strftime("%b %d %H:00"))
            temperatures.append(round(bucket.mean, 1))
            statuses.append(bucket.last_status.value)

        return {"labels": labels, "temperatures": temperatures, "statuses": statuses}

    def load(self) -> int:
        """Restore buckets from the JSON snapshot.

        A missing or corrupt file leaves the cache empty; malformed buckets
        are skipped.

        Returns:
            Number of buckets loaded
        """
        if self.cache_file is None or not self.cache_file.exists():
            return 0

        try:
            data = json.loads(self.cache_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            log.warning("trend_cache_corrupted", path=str(self.cache_file), error=str(e))
            return 0

        if not isinstance(data, dict):
            log.warning("trend_cache_corrupted", path=str(self.cache_file), error="not an object")
            return 0

        loaded: Dict[str, AggregateBucket] = {}
        for key, raw in data.items():
            try:
                datetime.strptime(key, "%Y-%m-%d %H")
                loaded[key] = AggregateBucket.from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                log.warning("trend_bucket_skipped", key=key, error=str(e))

        with self._lock:
            self._buckets = loaded
            self._evict()
            count = len(self._buckets)

        log.debug("trend_cache_loaded", path=str(self.cache_file), buckets=count)
        return count

    def save(self) -> None:
        """Write the buckets atomically to the JSON snapshot.

        Raises:
            PersistenceError: If the snapshot cannot be written
        """
        if self.cache_file is None:
            return

        content = json.dumps(
            {key: bucket.to_dict() for key, bucket in self.snapshot()},
            indent=2,
        ) + "\n"

        cache_dir = self.cache_file.parent
        try:
            cache_dir.mkdir(parents=True, exist_ok=True)
            temp_fd, temp_path = tempfile.mkstemp(dir=cache_dir, prefix=".tmp-trend-", suffix=".json")
        except OSError as e:
            raise PersistenceError(f"Cannot write trend cache in {cache_dir}: {e}") from e

        try:
            with open(temp_fd, "w", encoding="utf-8") as f:
                f.write(content)
            shutil.move(temp_path, self.cache_file)
        except OSError as e:
            Path(temp_path).unlink(missing_ok=True)
            log.error("trend_cache_write_failed", path=str(self.cache_file), error=str(e))
            raise PersistenceError(f"Cannot write trend cache {self.cache_file}: {e}") from e

    def _evict(self) -> None:
        # Caller holds the lock; dicts preserve insertion order
        while len(self._buckets) > self.retention:
            oldest = next(iter(self._buckets))
            del self._buckets[oldest]

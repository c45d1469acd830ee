"""Append-only temperature log.

One reading per line, ``timestamp,value,status[,source]``. Appends are
serialized within the process by a lock and across processes by ``flock``;
each record is written as one complete line and fsynced before the lock is
released, so readers (who take no lock) never see a partial record. A torn
trailing line left by a crashed writer is ignored on read.
"""

import csv
import os
import threading
from collections import deque
from pathlib import Path
from typing import Deque, Iterator, List, Optional, Union

import structlog

from idrac_monitor.exceptions import PersistenceError
from idrac_monitor.models.reading import LogRecord
from idrac_monitor.storage.locking import flocked
from idrac_monitor.utils.timestamps import get_zone

log = structlog.get_logger()

CSV_HEADER = ["Timestamp", "Temperature (°C)", "Status", "Source"]


class LogStore:
    """Durable, append-only sequence of log records."""

    LOG_FILENAME = "temperature.log"

    def __init__(self, log_dir: Union[str, Path], timezone: str = "UTC") -> None:
        """Initialize the log store.

        Args:
            log_dir: Directory holding the log file
            timezone: Zone used to render timestamps and to read legacy
                lines that carry no offset
        """
        self.log_dir = Path(log_dir)
        self.log_file = self.log_dir / self.LOG_FILENAME
        self.timezone = timezone
        self._tz = get_zone(timezone)
        self._write_lock = threading.Lock()

    def append(self, record: LogRecord) -> None:
        """Durably append one record.

        Raises:
            PersistenceError: If the log cannot be written
        """
        data = (record.to_line(self._tz) + "\n").encode("utf-8")

        try:
            with self._write_lock:
                self.log_dir.mkdir(parents=True, exist_ok=True)
                with open(self.log_file, "ab") as handle:
                    with flocked(handle):
                        handle.write(data)
                        handle.flush()
                        os.fsync(handle.fileno())
        except OSError as e:
            log.error("log_append_failed", path=str(self.log_file), error=str(e))
            raise PersistenceError(f"Cannot append to {self.log_file}: {e}") from e

        log.debug("reading_logged", value=record.value, status=record.status.value)

    def iter_records(self) -> Iterator[LogRecord]:
        """Yield every well-formed record in write order."""
        if not self.log_file.exists():
            return

        with open(self.log_file, "r", encoding="utf-8", errors="replace", newline="") as handle:
            for line_number, line in enumerate(handle, start=1):
                if not line.endswith("\n"):
                    # Unterminated tail: a write still in flight or torn by a crash
                    log.debug("log_line_incomplete", line=line_number)
                    continue
                if not line.strip():
                    continue
                record = self._parse(line, line_number)
                if record is not None:
                    yield record

    def read_recent(self, limit: int) -> List[LogRecord]:
        """Return the most recent records, oldest first.

        Args:
            limit: Maximum number of records to return

        Returns:
            Up to ``limit`` records in write order; fewer if the log is
            shorter, empty if it does not exist
        """
        if limit <= 0:
            return []
        recent: Deque[LogRecord] = deque(self.iter_records(), maxlen=limit)
        return list(recent)

    def export_csv(self, destination: Union[str, Path]) -> int:
        """Write the whole log as a CSV download.

        Args:
            destination: Output file path

        Returns:
            Number of records exported

        Raises:
            PersistenceError: If the destination cannot be written
        """
        count = 0
        try:
            with open(destination, "w", encoding="utf-8", newline="") as handle:
                writer = csv.writer(handle)
                writer.writerow(CSV_HEADER)
                for record in self.iter_records():
                    writer.writerow(
                        [
                            record.timestamp.astimezone(self._tz).strftime("%Y-%m-%d %H:%M:%S"),
                            f"{record.value:.1f}",
                            record.status.value,
                            record.source or "",
                        ]
                    )
                    count += 1
        except OSError as e:
            raise PersistenceError(f"Cannot write export to {destination}: {e}") from e

        log.info("log_exported", path=str(destination), records=count)
        return count

    def _parse(self, line: str, line_number: int) -> Optional[LogRecord]:
        try:
            return LogRecord.from_line(line, default_tz=self._tz)
        except ValueError as e:
            log.warning("log_line_malformed", path=str(self.log_file), line=line_number, error=str(e))
            return None

"""Tests for the append-only temperature log."""

import csv
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from idrac_monitor.exceptions import PersistenceError
from idrac_monitor.models import LogRecord, Severity
from idrac_monitor.storage import LogStore

T0 = datetime(2026, 1, 24, 6, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_log_dir():
    """Create temporary log directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def record(i: int, value: float = 24.0, status: Severity = Severity.NORMAL) -> LogRecord:
    return LogRecord(timestamp=T0 + timedelta(minutes=i), value=value, status=status)


class TestLogStoreAppend:
    """Tests for LogStore.append()."""

    def test_append_creates_file(self, temp_log_dir: Path) -> None:
        store = LogStore(temp_log_dir / "nested")
        store.append(record(0))
        assert store.log_file.exists()

    def test_line_format(self, temp_log_dir: Path) -> None:
        store = LogStore(temp_log_dir, timezone="Asia/Singapore")
        store.append(record(0, 26.04, Severity.WARNING))
        assert store.log_file.read_text() == "2026-01-24T14:00:00+08:00,26.0,WARNING\n"

    def test_records_read_back_in_order(self, temp_log_dir: Path) -> None:
        store = LogStore(temp_log_dir)
        for i in range(5):
            store.append(record(i, 20.0 + i))
        values = [r.value for r in store.iter_records()]
        assert values == [20.0, 21.0, 22.0, 23.0, 24.0]

    def test_append_failure_raises(self, temp_log_dir: Path) -> None:
        store = LogStore(temp_log_dir)
        with patch("idrac_monitor.storage.log_store.open", side_effect=OSError("disk full"), create=True):
            with pytest.raises(PersistenceError, match="disk full"):
                store.append(record(0))

    def test_concurrent_appends_never_interleave(self, temp_log_dir: Path) -> None:
        store = LogStore(temp_log_dir)
        per_thread = 50

        def writer(offset: int) -> None:
            for i in range(per_thread):
                store.append(record(offset * per_thread + i, 20.0 + offset))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = store.log_file.read_text().splitlines()
        assert len(lines) == 4 * per_thread
        assert len(list(store.iter_records())) == 4 * per_thread


class TestLogStoreRead:
    """Tests for LogStore.read_recent()."""

    def test_missing_file_empty(self, temp_log_dir: Path) -> None:
        assert LogStore(temp_log_dir).read_recent(100) == []

    def test_recent_oldest_first(self, temp_log_dir: Path) -> None:
        store = LogStore(temp_log_dir)
        for i in range(10):
            store.append(record(i, float(i)))
        recent = store.read_recent(3)
        assert [r.value for r in recent] == [7.0, 8.0, 9.0]

    def test_limit_larger_than_log(self, temp_log_dir: Path) -> None:
        store = LogStore(temp_log_dir)
        store.append(record(0))
        assert len(store.read_recent(100)) == 1

    @pytest.mark.parametrize("limit", [0, -1])
    def test_non_positive_limit(self, temp_log_dir: Path, limit: int) -> None:
        store = LogStore(temp_log_dir)
        store.append(record(0))
        assert store.read_recent(limit) == []

    def test_torn_trailing_line_skipped(self, temp_log_dir: Path) -> None:
        store = LogStore(temp_log_dir)
        store.append(record(0, 21.0))
        with open(store.log_file, "a") as f:
            f.write("2026-01-24T06:05:00+00:00,2")
        assert [r.value for r in store.read_recent(10)] == [21.0]

    def test_malformed_lines_skipped(
        self, temp_log_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        store = LogStore(temp_log_dir)
        store.log_file.write_text(
            "2026-01-24T06:00:00+00:00,21.0,NORMAL\n"
            "this is not a record\n"
            "\n"
            "2026-01-24 14:01:00,26.0,WARNING\n"
        )
        records = store.read_recent(10)
        assert [r.value for r in records] == [21.0, 26.0]
        captured = capsys.readouterr()
        assert "log_line_malformed" in captured.out

    def test_legacy_lines_read_in_configured_zone(self, temp_log_dir: Path) -> None:
        store = LogStore(temp_log_dir, timezone="Asia/Singapore")
        store.log_file.write_text("2026-01-24 14:00:00,22.0,NORMAL\n")
        (only,) = store.read_recent(1)
        assert only.timestamp == T0


class TestLogStoreExport:
    """Tests for LogStore.export_csv()."""

    def test_export(self, temp_log_dir: Path) -> None:
        store = LogStore(temp_log_dir, timezone="Asia/Singapore")
        store.append(record(0, 24.0))
        store.append(
            LogRecord(timestamp=T0, value=31.0, status=Severity.CRITICAL, source="10.0.0.9")
        )
        dest = temp_log_dir / "export.csv"

        count = store.export_csv(dest)

        assert count == 2
        with open(dest, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows[0] == ["Timestamp", "Temperature (°C)", "Status", "Source"]
        assert rows[1] == ["2026-01-24 14:00:00", "24.0", "NORMAL", ""]
        assert rows[2] == ["2026-01-24 14:00:00", "31.0", "CRITICAL", "10.0.0.9"]

    def test_export_empty_log(self, temp_log_dir: Path) -> None:
        store = LogStore(temp_log_dir)
        dest = temp_log_dir / "export.csv"
        assert store.export_csv(dest) == 0
        assert dest.read_text(encoding="utf-8").strip() == "Timestamp,Temperature (°C),Status,Source"

    def test_export_unwritable(self, temp_log_dir: Path) -> None:
        store = LogStore(temp_log_dir)
        with pytest.raises(PersistenceError):
            store.export_csv(temp_log_dir / "missing" / "export.csv")

"""End-to-end tests for the monitor service pipeline with fake collaborators."""

import csv
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union
from unittest.mock import patch

import pytest

from idrac_monitor.exceptions import FetchError, PersistenceError, SensorConnectionError
from idrac_monitor.models import AlertState, SensorReading, Severity
from idrac_monitor.models.enums import AlertKind
from idrac_monitor.notify import MessageBuilder, NotificationManager
from idrac_monitor.notify.messages import TEST_SUBJECT
from idrac_monitor.config import MonitorSettings
from idrac_monitor.service import MonitorService
from idrac_monitor.sensor import SensorClient
from idrac_monitor.storage import AlertStateStore, LogStore, TrendCache

T0 = datetime(2026, 1, 24, 14, 0, 0, tzinfo=timezone.utc)
MINUTE = timedelta(minutes=1)


class FakeSensor:
    """Returns queued values, one per fetch, or raises queued errors."""

    def __init__(self, items: List[Union[Tuple[float, datetime], Exception]]) -> None:
        self.items = list(items)
        self.fetches = 0

    def fetch_reading(self) -> SensorReading:
        self.fetches += 1
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        value, at = item
        return SensorReading(value=value, timestamp=at, sensor_name="Inlet")


class FakeNotifier:
    """Records deliveries; succeeds or fails per a queue of outcomes."""

    def __init__(self, outcomes: Optional[List[bool]] = None) -> None:
        self.outcomes = list(outcomes or [])
        self.sent: List[Tuple[str, str, Optional[List[str]]]] = []

    def deliver(self, subject: str, body: str, recipients: Optional[List[str]] = None) -> bool:
        self.sent.append((subject, body, recipients))
        return self.outcomes.pop(0) if self.outcomes else True

    @property
    def subjects(self) -> List[str]:
        return [s for s, _, _ in self.sent]


@pytest.fixture
def data_dir() -> Iterator[Path]:
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def no_health_file():
    with patch("idrac_monitor.service.update_health_status") as mock_health:
        yield mock_health


def series(*values: float, start: datetime = T0, step: timedelta = MINUTE) -> List[Tuple[float, datetime]]:
    return [(v, start + step * i) for i, v in enumerate(values)]


def make_service(
    data_dir: Path,
    sensor: FakeSensor,
    notifier: Optional[FakeNotifier] = None,
    digest_enabled: bool = False,
) -> MonitorService:
    return MonitorService(
        sensor=sensor,
        notifier=notifier or FakeNotifier(),
        log_store=LogStore(data_dir),
        trend_cache=TrendCache(cache_dir=data_dir),
        state_store=AlertStateStore(data_dir),
        messages=MessageBuilder(host="10.0.0.5", warning_threshold=25.0, critical_threshold=30.0),
        digest_enabled=digest_enabled,
        smtp_server="relay:25",
        sender="monitor@example.com",
        recipients=["ops@example.com"],
        clock=lambda: T0,
    )


def poll_all(service: MonitorService, count: int) -> list:
    return [service.poll() for _ in range(count)]


class TestPollPipeline:
    """Tests for MonitorService.poll()."""

    def test_normal_reading(self, data_dir: Path, no_health_file) -> None:
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor(series(22.0)), notifier)

        result = service.poll()

        assert result.ok
        assert result.reading is not None
        assert result.reading.status is Severity.NORMAL
        assert not result.decision.should_send
        assert notifier.sent == []
        assert len(service.recent_logs(10)) == 1
        assert len(service.trend_snapshot()) == 1
        assert service.current_status().state.last_status is Severity.NORMAL
        assert no_health_file.call_args[0][0].value == "healthy"

    def test_warning_sends_transition_alert(self, data_dir: Path) -> None:
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor(series(26.0)), notifier)

        result = service.poll()

        assert result.alert_sent
        assert result.decision.kind is AlertKind.STATUS_CHANGE
        assert notifier.subjects == ["[iDRAC Alert] WARNING - 26.0°C - 10.0.0.5"]
        state = AlertStateStore(data_dir).read()
        assert state.last_alert_status is Severity.WARNING
        assert state.last_alert_time == T0

    def test_fetch_failure_skips_poll(self, data_dir: Path, no_health_file) -> None:
        notifier = FakeNotifier()
        service = make_service(
            data_dir,
            FakeSensor([SensorConnectionError("Cannot connect to iDRAC")]),
            notifier,
        )

        result = service.poll()

        assert not result.ok
        assert result.error == "Cannot connect to iDRAC"
        assert result.error_code == 2
        assert notifier.sent == []
        assert service.recent_logs(10) == []
        assert service.trend_snapshot() == []
        assert not (data_dir / ".alert_state.json").exists()
        assert no_health_file.call_args[0][0].value == "unhealthy"

    def test_rearm_after_normal(self, data_dir: Path) -> None:
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor(series(22.0, 26.0, 22.0, 26.0)), notifier)

        poll_all(service, 4)

        assert len(notifier.sent) == 2
        assert all("WARNING" in s for s in notifier.subjects)

    def test_steady_warning_sends_one_alert(self, data_dir: Path) -> None:
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor(series(26.0, 26.5, 27.0, 26.8, 26.1)), notifier)

        poll_all(service, 5)

        assert len(notifier.sent) == 1

    def test_persistent_alert_after_five_minutes(self, data_dir: Path) -> None:
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor(series(*[26.0] * 7)), notifier)

        results = poll_all(service, 7)

        assert [r.decision.kind for r in results if r.alert_sent] == [
            AlertKind.STATUS_CHANGE,
            AlertKind.PERSISTENT_WARNING,
        ]
        assert notifier.subjects[1].startswith("[Persistent Warning] [iDRAC Alert] WARNING")
        assert "Duration: 5m 00s" in notifier.sent[1][1]

    def test_failed_delivery_retried_next_poll(self, data_dir: Path) -> None:
        notifier = FakeNotifier(outcomes=[False, True])
        service = make_service(data_dir, FakeSensor(series(31.0, 31.0, 31.0)), notifier)

        first = service.poll()
        assert first.decision.should_send and not first.alert_sent
        assert AlertStateStore(data_dir).read().last_alert_status is None

        second, third = poll_all(service, 2)

        assert second.alert_sent
        assert AlertStateStore(data_dir).read().last_alert_status is Severity.CRITICAL
        assert not third.decision.should_send
        assert len(notifier.sent) == 2

    def test_log_failure_does_not_block_alert(
        self, data_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor(series(26.0)), notifier)

        with patch.object(service.log_store, "append", side_effect=PersistenceError("disk full")):
            result = service.poll()

        assert result.alert_sent
        assert len(service.trend_snapshot()) == 1
        assert "reading_log_failed" in capsys.readouterr().out

    def test_state_write_failure_is_logged(
        self, data_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        service = make_service(data_dir, FakeSensor(series(26.0)))

        with patch.object(service.state_store, "write", side_effect=PersistenceError("read-only")):
            result = service.poll()

        assert result.ok
        assert "state_write_failed" in capsys.readouterr().out

    def test_unusable_state_directory_skips_alerts(
        self, data_dir: Path, no_health_file, capsys: pytest.CaptureFixture[str]
    ) -> None:
        blocker = data_dir / "not-a-dir"
        blocker.write_text("")
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor(series(31.0)), notifier)
        service.state_store = AlertStateStore(blocker / "state")

        result = service.poll()

        assert result.ok
        assert result.reading is not None
        assert result.reading.status is Severity.CRITICAL
        assert not result.decision.should_send
        assert notifier.sent == []
        assert len(service.recent_logs(10)) == 1
        assert len(service.trend_snapshot()) == 1
        assert "state_lock_failed" in capsys.readouterr().out
        assert no_health_file.call_args[0][0].value == "healthy"

    def test_unusable_trend_directory_still_alerts(
        self, data_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        blocker = data_dir / "not-a-dir"
        blocker.write_text("")
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor(series(26.0)), notifier)
        service.trend_cache = TrendCache(cache_dir=blocker / "trend")

        result = service.poll()

        assert result.alert_sent
        assert len(service.trend_snapshot()) == 1
        assert "trend_cache_save_failed" in capsys.readouterr().out

    def test_polls_and_ingest_share_trend_file(self, data_dir: Path) -> None:
        poller = make_service(data_dir, FakeSensor(series(20.0, 24.0)))
        ingester = make_service(data_dir, FakeSensor([]))

        poller.poll()
        ingester.ingest(22.0, at=T0 + 2 * MINUTE)
        poller.poll()

        restored = TrendCache(cache_dir=data_dir)
        restored.load()
        ((_, bucket),) = restored.snapshot()
        assert bucket.count == 3
        assert bucket.mean == pytest.approx(22.0)

    def test_trend_cache_persisted(self, data_dir: Path) -> None:
        service = make_service(data_dir, FakeSensor(series(22.0, 24.0)))
        poll_all(service, 2)

        restored = TrendCache(cache_dir=data_dir)
        assert restored.load() == 1
        assert restored.snapshot()[0][1].mean == pytest.approx(23.0)


class TestHourlyDigest:
    """Digest behaviour inside poll() and send_digest()."""

    def test_digest_once_per_hour(self, data_dir: Path) -> None:
        notifier = FakeNotifier()
        readings = [(22.0, T0), (22.0, T0 + 30 * MINUTE), (22.0, T0 + 60 * MINUTE)]
        service = make_service(data_dir, FakeSensor(readings), notifier, digest_enabled=True)

        results = poll_all(service, 3)

        assert [r.digest_sent for r in results] == [True, False, True]
        assert all(s.startswith("[iDRAC Hourly Report] NORMAL") for s in notifier.subjects)
        assert AlertStateStore(data_dir).read().last_hourly_digest_hour == 15

    def test_digest_disabled(self, data_dir: Path) -> None:
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor(series(22.0)), notifier, digest_enabled=False)
        assert not service.poll().digest_sent
        assert notifier.sent == []

    def test_failed_digest_retried(self, data_dir: Path) -> None:
        notifier = FakeNotifier(outcomes=[False, True])
        service = make_service(data_dir, FakeSensor(series(22.0, 22.0)), notifier, digest_enabled=True)

        first, second = poll_all(service, 2)

        assert not first.digest_sent
        assert second.digest_sent

    def test_alert_and_digest_same_poll(self, data_dir: Path) -> None:
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor(series(31.0)), notifier, digest_enabled=True)

        result = service.poll()

        assert result.alert_sent and result.digest_sent
        assert notifier.subjects[0].startswith("[iDRAC Alert] CRITICAL")
        assert notifier.subjects[1].startswith("[iDRAC Hourly Report] CRITICAL")

    def test_send_digest_skips_same_hour(self, data_dir: Path) -> None:
        store = AlertStateStore(data_dir)
        store.write(AlertState(last_hourly_digest_hour=14))
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor(series(22.0)), notifier, digest_enabled=True)

        assert service.send_digest() is False
        assert notifier.sent == []

    def test_send_digest_force(self, data_dir: Path) -> None:
        AlertStateStore(data_dir).write(AlertState(last_hourly_digest_hour=14))
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor(series(22.0)), notifier)

        assert service.send_digest(force=True) is True
        assert len(notifier.sent) == 1
        # the reading behind a digest is not logged
        assert service.recent_logs(10) == []

    def test_send_digest_fetch_failure_changes_nothing(self, data_dir: Path) -> None:
        store = AlertStateStore(data_dir)
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor([FetchError("HTTP 503")]), notifier, digest_enabled=True)

        with pytest.raises(FetchError):
            service.send_digest()

        assert notifier.sent == []
        assert store.read() == AlertState()
        assert not store.state_file.exists()


class TestOnDemand:
    """Tests for reports, test notifications and ingest."""

    def test_send_report_leaves_state(self, data_dir: Path) -> None:
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor(series(31.0)), notifier)

        assert service.send_report() is True

        assert notifier.subjects == ["[iDRAC Report] CRITICAL - 31.0°C - 10.0.0.5"]
        assert not (data_dir / ".alert_state.json").exists()

    def test_send_report_fetch_failure(self, data_dir: Path) -> None:
        service = make_service(data_dir, FakeSensor([SensorConnectionError()]))
        with pytest.raises(SensorConnectionError):
            service.send_report()

    def test_send_test_notification(self, data_dir: Path) -> None:
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor([]), notifier)

        assert service.send_test_notification() is True

        subject, body, recipients = notifier.sent[0]
        assert subject == TEST_SUBJECT
        assert "SMTP Server: relay:25" in body
        assert recipients == ["ops@example.com"]

    def test_ingest_logged_with_source(self, data_dir: Path) -> None:
        notifier = FakeNotifier()
        service = make_service(data_dir, FakeSensor([]), notifier)

        reading = service.ingest(27.5, source="10.0.0.12")

        assert reading.status is Severity.WARNING
        (record,) = service.recent_logs(10)
        assert record.source == "10.0.0.12"
        assert record.timestamp == T0
        assert len(service.trend_snapshot()) == 1
        # ingested readings do not drive alerts
        assert notifier.sent == []

    def test_ingest_default_source(self, data_dir: Path) -> None:
        service = make_service(data_dir, FakeSensor([]))
        assert service.ingest(22.0).source == "ingest"

    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    def test_ingest_rejects_non_finite(self, data_dir: Path, value: float) -> None:
        service = make_service(data_dir, FakeSensor([]))
        with pytest.raises(ValueError):
            service.ingest(value)


class TestQueries:
    """Tests for the read-only query surface."""

    def test_current_status_empty(self, data_dir: Path) -> None:
        summary = make_service(data_dir, FakeSensor([])).current_status()
        assert summary.latest is None
        assert summary.state == AlertState()

    def test_current_status_after_polls(self, data_dir: Path) -> None:
        service = make_service(data_dir, FakeSensor(series(22.0, 26.0)))
        poll_all(service, 2)

        summary = service.current_status()

        assert summary.latest is not None
        assert summary.latest.value == 26.0
        assert summary.state.last_status is Severity.WARNING

    def test_graph_data(self, data_dir: Path) -> None:
        service = make_service(data_dir, FakeSensor(series(22.0, 24.0, start=T0, step=timedelta(hours=1))))
        poll_all(service, 2)
        data = service.graph_data()
        assert data["labels"] == ["Jan 24 14:00", "Jan 24 15:00"]
        assert data["temperatures"] == [22.0, 24.0]

    def test_export_logs(self, data_dir: Path) -> None:
        service = make_service(data_dir, FakeSensor(series(22.0, 26.0)))
        poll_all(service, 2)

        dest = data_dir / "export.csv"
        assert service.export_logs(dest) == 2
        with open(dest, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert [row[2] for row in rows[1:]] == ["NORMAL", "WARNING"]


class TestFromSettings:
    """Tests for MonitorService.from_settings()."""

    def test_builds_collaborators(self, data_dir: Path) -> None:
        settings = MonitorSettings(
            host="idrac.local",
            data_dir=str(data_dir),
            timezone="Asia/Singapore",
            warning_threshold=27,
            critical_threshold=33,
            persistent_alert_after=600,
            email_enabled=True,
            smtp_host="relay.local",
            email_recipients="ops@example.com",
        )

        service = MonitorService.from_settings(settings)

        assert isinstance(service.sensor, SensorClient)
        assert isinstance(service.notifier, NotificationManager)
        assert service.notifier.email_delivery is not None
        assert service.notifier.file_delivery is None
        assert service.thresholds.warning == 27.0
        assert service.policy.persistent_after == timedelta(minutes=10)
        assert service.log_store.log_file == data_dir / "temperature.log"
        assert service.smtp_server == "relay.local:25"
        assert service.recipients == ["ops@example.com"]
        service.close()

    def test_loads_existing_trend_cache(self, data_dir: Path) -> None:
        cache = TrendCache(cache_dir=data_dir)
        cache.update(22.0, Severity.NORMAL, T0)
        cache.save()

        service = MonitorService.from_settings(MonitorSettings(host="h", data_dir=str(data_dir)))

        assert len(service.trend_snapshot()) == 1

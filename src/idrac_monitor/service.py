"""Monitor service: wires sensor, storage, alert engine and notifier.

One ``poll()`` is a complete unit of work:

    fetch -> classify -> log append -> trend update -> alert decide/notify/commit -> digest

A fetch failure skips the rest of the poll. Storage failures are logged and
never stop the alert path from seeing the reading. The alert state is only
touched inside ``AlertStateStore.transaction()`` so overlapping polls (or a
CLI invocation racing the service) cannot both send the same alert.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, Union

import structlog

from idrac_monitor.alerts.engine import (
    DEFAULT_POLICY,
    NO_ALERT,
    AlertDecision,
    AlertPolicy,
    commit_alert,
    decide,
    mark_digest_sent,
    should_send_hourly_digest,
)
from idrac_monitor.analysis.classifier import DEFAULT_THRESHOLDS, Thresholds
from idrac_monitor.config.settings import MonitorSettings
from idrac_monitor.exceptions import FetchError, PersistenceError
from idrac_monitor.health import HealthStatus, update_health_status
from idrac_monitor.models.alert_state import AlertState
from idrac_monitor.models.enums import MessageKind
from idrac_monitor.models.reading import LogRecord, Reading, SensorReading
from idrac_monitor.models.trend import AggregateBucket
from idrac_monitor.notify.email import EmailDelivery
from idrac_monitor.notify.file import FileDelivery
from idrac_monitor.notify.manager import NotificationManager, Notifier
from idrac_monitor.notify.messages import MessageBuilder
from idrac_monitor.sensor.client import SensorClient
from idrac_monitor.storage.log_store import LogStore
from idrac_monitor.storage.state_store import AlertStateStore
from idrac_monitor.storage.trend_cache import TrendCache
from idrac_monitor.utils.timestamps import get_zone

log = structlog.get_logger()

# Hourly buckets listed in digest and report bodies
REPORT_TREND_HOURS = 24

DEFAULT_INGEST_SOURCE = "ingest"


class Sensor(Protocol):
    """Anything that can produce a temperature reading."""

    def fetch_reading(self) -> SensorReading:
        ...


@dataclass(frozen=True)
class PollResult:
    """What one poll did.

    Attributes:
        reading: The classified reading, None if the fetch failed
        decision: Alert decided for this reading
        alert_sent: True if the decided alert was delivered and committed
        digest_sent: True if the hourly digest went out during this poll
        error: Fetch failure message when ``reading`` is None
        error_code: Exit code of the fetch failure
    """

    reading: Optional[Reading] = None
    decision: AlertDecision = NO_ALERT
    alert_sent: bool = False
    digest_sent: bool = False
    error: Optional[str] = None
    error_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.reading is not None


@dataclass(frozen=True)
class StatusSummary:
    """Last known state without contacting the sensor."""

    state: AlertState
    latest: Optional[LogRecord]


class MonitorService:
    """Runs polls and answers queries against the monitor's stores."""

    def __init__(
        self,
        sensor: Sensor,
        notifier: Notifier,
        log_store: LogStore,
        trend_cache: TrendCache,
        state_store: AlertStateStore,
        messages: MessageBuilder,
        thresholds: Thresholds = DEFAULT_THRESHOLDS,
        policy: AlertPolicy = DEFAULT_POLICY,
        timezone: str = "UTC",
        digest_enabled: bool = True,
        smtp_server: str = "n/a",
        sender: str = "n/a",
        recipients: Sequence[str] = (),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.sensor = sensor
        self.notifier = notifier
        self.log_store = log_store
        self.trend_cache = trend_cache
        self.state_store = state_store
        self.messages = messages
        self.thresholds = thresholds
        self.policy = policy
        self.timezone = timezone
        self.digest_enabled = digest_enabled
        self.smtp_server = smtp_server
        self.sender = sender
        self.recipients = list(recipients)
        self._tz = get_zone(timezone)
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: MonitorSettings) -> "MonitorService":
        """Build a service and all its collaborators from configuration."""
        data_dir = Path(settings.data_dir)
        recipients = settings.get_email_recipients()

        email_delivery = None
        if settings.email_enabled and settings.smtp_host:
            email_delivery = EmailDelivery(
                smtp_host=settings.smtp_host,
                smtp_port=settings.smtp_port,
                smtp_user=settings.smtp_user,
                smtp_password=settings.smtp_password,
                use_tls=settings.smtp_use_tls,
                from_addr=settings.email_from,
                from_name=settings.email_from_name,
                timeout=settings.smtp_timeout,
            )

        file_delivery = None
        if settings.file_enabled and settings.file_output_dir:
            file_delivery = FileDelivery(
                output_dir=settings.file_output_dir,
                retention_days=settings.file_retention_days,
                timezone=settings.timezone,
            )

        notifier = NotificationManager(
            email_delivery=email_delivery,
            file_delivery=file_delivery,
            default_recipients=recipients,
            outbox_dir=str(data_dir / "outbox") if email_delivery else None,
        )

        trend_cache = TrendCache(
            cache_dir=data_dir,
            retention=settings.trend_retention_hours,
            timezone=settings.timezone,
        )
        trend_cache.load()

        thresholds = Thresholds(
            warning=settings.warning_threshold,
            critical=settings.critical_threshold,
        )

        return cls(
            sensor=SensorClient(settings),
            notifier=notifier,
            log_store=LogStore(data_dir, timezone=settings.timezone),
            trend_cache=trend_cache,
            state_store=AlertStateStore(data_dir),
            messages=MessageBuilder(
                host=settings.host,
                timezone=settings.timezone,
                warning_threshold=thresholds.warning,
                critical_threshold=thresholds.critical,
            ),
            thresholds=thresholds,
            policy=AlertPolicy(persistent_after=timedelta(seconds=settings.persistent_alert_after)),
            timezone=settings.timezone,
            digest_enabled=settings.digest_enabled,
            smtp_server=email_delivery.server_label if email_delivery else "n/a",
            sender=settings.email_from,
            recipients=recipients,
        )

    def close(self) -> None:
        """Release the sensor's HTTP connection, if any."""
        close = getattr(self.sensor, "close", None)
        if callable(close):
            close()

    # Poll pipeline

    def poll(self) -> PollResult:
        """Fetch one reading and run it through the whole pipeline.

        Never raises for fetch, storage or delivery failures; they are
        logged and reflected in the result.
        """
        try:
            sensor_reading = self.sensor.fetch_reading()
        except FetchError as e:
            log.warning("poll_skipped", reason="fetch_failed", error=e.message)
            update_health_status(HealthStatus.UNHEALTHY, {"error": e.message})
            return PollResult(error=e.message, error_code=e.exit_code)

        reading = self._classify(sensor_reading.value, sensor_reading.timestamp)
        log.info(
            "reading_received",
            value=round(reading.value, 1),
            status=reading.status.value,
            sensor=sensor_reading.sensor_name,
        )

        self._record(reading)
        decision, alert_sent, digest_sent = self._evaluate(reading)

        update_health_status(
            HealthStatus.HEALTHY,
            {"temperature": round(reading.value, 1), "status": reading.status.value},
        )
        return PollResult(
            reading=reading,
            decision=decision,
            alert_sent=alert_sent,
            digest_sent=digest_sent,
        )

    def _classify(self, value: float, at: datetime, source: Optional[str] = None) -> Reading:
        return Reading(
            timestamp=at,
            value=value,
            status=self.thresholds.classify(value),
            source=source,
        )

    def _record(self, reading: Reading) -> None:
        """Append to the log and fold into the trend cache."""
        try:
            self.log_store.append(reading.to_log_record())
        except PersistenceError as e:
            log.error("reading_log_failed", error=e.message)

        try:
            self.trend_cache.record(reading.value, reading.status, reading.timestamp)
        except PersistenceError as e:
            log.error("trend_cache_save_failed", error=e.message)

    def _evaluate(self, reading: Reading) -> Tuple[AlertDecision, bool, bool]:
        """Alert decide/notify/commit plus the digest check, under the state lock.

        If the lock cannot be taken no alert is evaluated for this reading;
        the state is untouched and the next poll decides again.
        """
        try:
            with self.state_store.transaction():
                return self._evaluate_locked(reading)
        except PersistenceError as e:
            log.error("state_lock_failed", error=e.message, status=reading.status.value)
            return NO_ALERT, False, False

    def _evaluate_locked(self, reading: Reading) -> Tuple[AlertDecision, bool, bool]:
        alert_sent = False
        digest_sent = False

        state = self.state_store.read()
        state, decision = decide(state, reading.status, reading.timestamp, self.policy)

        if decision.should_send:
            message = self.messages.alert(reading, decision)
            if self.notifier.deliver(message.subject, message.body):
                state = commit_alert(state, decision, reading.timestamp)
                alert_sent = True
                log.info(
                    "alert_sent",
                    kind=decision.kind.value if decision.kind else None,
                    status=reading.status.value,
                    value=round(reading.value, 1),
                )
            else:
                # Not committed: the next poll decides the same alert again
                log.warning(
                    "alert_delivery_failed",
                    kind=decision.kind.value if decision.kind else None,
                    status=reading.status.value,
                )

        if self.digest_enabled and should_send_hourly_digest(state, reading.timestamp, self._tz):
            digest_sent, state = self._deliver_digest(state, reading)

        self._write_state(state)
        return decision, alert_sent, digest_sent

    def _deliver_digest(self, state: AlertState, reading: Reading) -> Tuple[bool, AlertState]:
        message = self.messages.report(
            reading,
            kind=MessageKind.HOURLY_REPORT,
            trend=self.trend_cache.snapshot()[-REPORT_TREND_HOURS:],
        )
        if not self.notifier.deliver(message.subject, message.body):
            log.warning("digest_delivery_failed", status=reading.status.value)
            return False, state

        log.info("digest_sent", status=reading.status.value, value=round(reading.value, 1))
        return True, mark_digest_sent(state, reading.timestamp, self._tz)

    def _write_state(self, state: AlertState) -> None:
        try:
            self.state_store.write(state)
        except PersistenceError as e:
            log.error("state_write_failed", error=e.message)

    # On-demand operations

    def _fetch(self) -> Reading:
        sensor_reading = self.sensor.fetch_reading()
        return self._classify(sensor_reading.value, sensor_reading.timestamp)

    def send_digest(self, force: bool = False) -> bool:
        """Send the hourly digest for a freshly fetched reading.

        Without ``force`` the digest is skipped if one already went out this
        hour or digests are disabled. The reading is not logged.

        Returns:
            True if the digest was delivered

        Raises:
            FetchError: If no reading could be fetched (nothing is sent
                and the state is left untouched)
            PersistenceError: If the alert state lock cannot be taken
        """
        if not force and not self.digest_enabled:
            log.info("digest_skipped", reason="disabled")
            return False

        reading = self._fetch()

        with self.state_store.transaction():
            state = self.state_store.read()
            if not force and not should_send_hourly_digest(state, reading.timestamp, self._tz):
                log.info("digest_skipped", reason="already_sent_this_hour")
                return False

            sent, state = self._deliver_digest(state, reading)
            if sent:
                self._write_state(state)
        return sent

    def send_report(self) -> bool:
        """Send an on-demand status report. Does not change the alert state.

        Raises:
            FetchError: If no reading could be fetched
        """
        reading = self._fetch()
        message = self.messages.report(
            reading,
            kind=MessageKind.REPORT,
            trend=self.trend_cache.snapshot()[-REPORT_TREND_HOURS:],
        )
        delivered = self.notifier.deliver(message.subject, message.body)
        log.info("report_sent" if delivered else "report_delivery_failed", status=reading.status.value)
        return delivered

    def send_test_notification(self) -> bool:
        """Send a connectivity test message through the notifier."""
        message = self.messages.test(
            now=self._clock(),
            smtp_server=self.smtp_server,
            sender=self.sender,
            recipients=self.recipients,
        )
        delivered = self.notifier.deliver(message.subject, message.body, self.recipients or None)
        log.info("test_notification_sent" if delivered else "test_notification_failed")
        return delivered

    def ingest(
        self,
        value: float,
        source: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> Reading:
        """Record an externally pushed reading.

        The reading is classified, logged and aggregated, tagged with its
        source. It does not drive alerts.

        Raises:
            ValueError: If the value is not a finite number
        """
        if isinstance(value, bool) or not math.isfinite(float(value)):
            raise ValueError(f"Invalid temperature value: {value!r}")

        reading = self._classify(
            float(value),
            at or self._clock(),
            source=source or DEFAULT_INGEST_SOURCE,
        )
        self._record(reading)
        log.info(
            "reading_ingested",
            value=round(reading.value, 1),
            status=reading.status.value,
            source=reading.source,
        )
        return reading

    # Queries

    def current_status(self) -> StatusSummary:
        """Last persisted alert state and most recent log record."""
        recent = self.log_store.read_recent(1)
        return StatusSummary(
            state=self.state_store.read(),
            latest=recent[-1] if recent else None,
        )

    def recent_logs(self, limit: int = 100) -> List[LogRecord]:
        return self.log_store.read_recent(limit)

    def trend_snapshot(self) -> List[Tuple[str, AggregateBucket]]:
        return self.trend_cache.snapshot()

    def graph_data(self) -> Dict[str, List[Any]]:
        return self.trend_cache.graph_data()

    def export_logs(self, destination: Union[str, Path]) -> int:
        """Export the full log as CSV; returns the number of records."""
        return self.log_store.export_csv(destination)

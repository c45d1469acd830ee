"""Subject and body rendering for outgoing notifications.

Bodies are plain text rendered from Jinja2 templates shipped with the
package, so operators can read them in any mail client.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from jinja2 import Environment, PackageLoader

from idrac_monitor.alerts.engine import AlertDecision
from idrac_monitor.models.enums import AlertKind, MessageKind, Severity
from idrac_monitor.models.reading import Reading
from idrac_monitor.models.trend import AggregateBucket
from idrac_monitor.utils.timestamps import get_zone

SUBJECT_PREFIXES = {
    AlertKind.PERSISTENT_WARNING: "[Persistent Warning] ",
    AlertKind.PERSISTENT_CRITICAL: "[Persistent Critical] ",
}

RECOMMENDED_ACTIONS = {
    Severity.CRITICAL: "Immediate attention recommended (check cooling, workloads, iDRAC).",
    Severity.WARNING: "Monitor closely; investigate airflow and load.",
}

TEST_SUBJECT = "[iDRAC Test] Email Connectivity"


@dataclass(frozen=True)
class Message:
    """A rendered notification."""

    subject: str
    body: str


def format_temperature(value: float) -> str:
    return f"{value:.1f}°C"


def format_duration(held: timedelta) -> str:
    """Render a held duration like ``5m 10s`` or ``1h 02m``."""
    total = max(int(held.total_seconds()), 0)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    return f"{minutes}m {seconds:02d}s"


class MessageBuilder:
    """Renders alert, report and test notifications.

    Attributes:
        host: iDRAC host name shown in subjects and bodies
        timezone: IANA zone used to display timestamps
    """

    def __init__(
        self,
        host: str,
        timezone: str = "UTC",
        warning_threshold: Optional[float] = None,
        critical_threshold: Optional[float] = None,
    ) -> None:
        self.host = host
        self.timezone = timezone
        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold
        self._tz = get_zone(timezone)
        self.env = Environment(
            loader=PackageLoader("idrac_monitor.notify", "templates"),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
        )

    def format_time(self, moment: datetime) -> str:
        return moment.astimezone(self._tz).strftime("%Y-%m-%d %H:%M:%S")

    def build_subject(self, kind: MessageKind, status: Severity, value: float) -> str:
        """Subject like ``[iDRAC Alert] WARNING - 25.0°C - 10.0.0.5``."""
        return f"[iDRAC {kind.value}] {status.value} - {format_temperature(value)} - {self.host}"

    def alert(self, reading: Reading, decision: AlertDecision) -> Message:
        """Render the notification for an alert decision.

        Raises:
            ValueError: If the decision does not call for an alert
        """
        if decision.kind is None or decision.status is None:
            raise ValueError("Cannot render a message for a no-alert decision")

        prefix = SUBJECT_PREFIXES.get(decision.kind, "")
        subject = prefix + self.build_subject(MessageKind.ALERT, decision.status, reading.value)
        duration = None
        if decision.kind.is_persistent and decision.held_for is not None:
            duration = format_duration(decision.held_for)

        body = self._render(
            "alert.txt",
            kind=MessageKind.ALERT.value,
            host=self.host,
            status=decision.status.value,
            temperature=format_temperature(reading.value),
            time=self.format_time(reading.timestamp),
            duration=duration,
            action=RECOMMENDED_ACTIONS.get(decision.status),
        )
        return Message(subject=subject, body=body)

    def report(
        self,
        reading: Reading,
        kind: MessageKind = MessageKind.HOURLY_REPORT,
        trend: Sequence[Tuple[str, AggregateBucket]] = (),
    ) -> Message:
        """Render an hourly digest or on-demand report for a fresh reading."""
        rows: List[Dict[str, Any]] = [
            {
                "label": key,
                "min": format_temperature(bucket.min),
                "mean": format_temperature(bucket.mean),
                "max": format_temperature(bucket.max),
                "count": bucket.count,
                "status": bucket.last_status.value,
            }
            for key, bucket in trend
        ]
        body = self._render(
            "report.txt",
            kind=kind.value,
            host=self.host,
            status=reading.status.value,
            temperature=format_temperature(reading.value),
            time=self.format_time(reading.timestamp),
            warning=self._threshold(self.warning_threshold),
            critical=self._threshold(self.critical_threshold),
            trend=rows,
        )
        return Message(
            subject=self.build_subject(kind, reading.status, reading.value),
            body=body,
        )

    def test(
        self,
        now: datetime,
        smtp_server: str,
        sender: str,
        recipients: Sequence[str],
    ) -> Message:
        """Render the email connectivity test message."""
        body = self._render(
            "test.txt",
            time=self.format_time(now),
            host=self.host,
            smtp_server=smtp_server,
            sender=sender,
            recipients=", ".join(recipients),
        )
        return Message(subject=TEST_SUBJECT, body=body)

    def _threshold(self, value: Optional[float]) -> str:
        return format_temperature(value) if value is not None else "n/a"

    def _render(self, template_name: str, **context: Any) -> str:
        template = self.env.get_template(template_name)
        return template.render(**context).rstrip("\n") + "\n"

"""Alert decision engine.

The engine is a set of pure functions over ``AlertState``. ``decide`` maps
the current state and a freshly classified status to the next state and at
most one alert decision. It never performs I/O: the caller delivers the
notification and applies ``commit_alert`` only when delivery succeeded, so
a failed delivery is decided again on the next poll.

Rules, in precedence order (the first match decides the alert):

1. Transition alert: an abnormal status that differs from the last alerted
   status, or whose run has no committed alert yet (re-armed by NORMAL, or
   a previous attempt in this run failed to deliver).
2. Persistent warning: WARNING held for at least ``persistent_after``,
   once per run.
3. Persistent critical: same for CRITICAL.

Independently, NORMAL clears the entry times and the persistent latch, and
``last_status`` always tracks the latest status.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, Optional, Tuple

from idrac_monitor.models.alert_state import AlertState
from idrac_monitor.models.enums import AlertKind, Severity
from idrac_monitor.utils.timestamps import hour_of

_ENTERED_FIELD = {
    Severity.WARNING: "warning_entered_at",
    Severity.CRITICAL: "critical_entered_at",
}

_PERSISTENT_KIND = {
    Severity.WARNING: AlertKind.PERSISTENT_WARNING,
    Severity.CRITICAL: AlertKind.PERSISTENT_CRITICAL,
}


@dataclass(frozen=True)
class AlertPolicy:
    """Tunables of the alert rules.

    Attributes:
        persistent_after: How long a severity must be held before the
            persistent follow-up alert fires
    """

    persistent_after: timedelta = timedelta(minutes=5)


DEFAULT_POLICY = AlertPolicy()


@dataclass(frozen=True)
class AlertDecision:
    """Outcome of one ``decide`` call.

    ``kind`` is None when no alert should be sent.
    """

    kind: Optional[AlertKind] = None
    status: Optional[Severity] = None
    held_for: Optional[timedelta] = None

    @property
    def should_send(self) -> bool:
        return self.kind is not None


NO_ALERT = AlertDecision()


def decide(
    state: AlertState,
    status: Severity,
    now: datetime,
    policy: AlertPolicy = DEFAULT_POLICY,
) -> Tuple[AlertState, AlertDecision]:
    """Apply one classified reading to the alert state.

    Args:
        state: Current alert state
        status: Classification of the new reading
        now: Time of the reading (timezone-aware)
        policy: Alert rule tunables

    Returns:
        Tuple of (next state, decision). The next state does not yet record
        the alert as sent; see ``commit_alert``.
    """
    updates: Dict[str, Any] = {"last_status": status}
    decision = NO_ALERT

    if status.is_abnormal:
        entered = state.entered_at(status)
        latched = state.persistent_alerted
        rearmed = entered is None

        if entered is None or state.last_status != status:
            entered = now
            updates[_ENTERED_FIELD[status]] = now
            if latched == status:
                latched = None
                updates["persistent_alerted"] = None

        # Nothing committed since this run began: the transition alert is still owed
        unsent = (
            rearmed
            or state.last_alert_time is None
            or state.last_alert_time < entered
        )

        if status != state.last_alert_status or unsent:
            decision = AlertDecision(kind=AlertKind.STATUS_CHANGE, status=status)
        else:
            held = now - entered
            if held >= policy.persistent_after and latched != status:
                decision = AlertDecision(
                    kind=_PERSISTENT_KIND[status],
                    status=status,
                    held_for=held,
                )
    else:
        updates["warning_entered_at"] = None
        updates["critical_entered_at"] = None
        updates["persistent_alerted"] = None

    return replace(state, **updates), decision


def commit_alert(state: AlertState, decision: AlertDecision, now: datetime) -> AlertState:
    """Record a successfully delivered alert.

    Must only be called after the notifier reported success.
    """
    if not decision.should_send:
        return state

    updates: Dict[str, Any] = {
        "last_alert_status": decision.status,
        "last_alert_time": now,
    }
    if decision.kind is not None and decision.kind.is_persistent:
        updates["persistent_alerted"] = decision.status
    return replace(state, **updates)


def should_send_hourly_digest(
    state: AlertState,
    now: datetime,
    tz: tzinfo = timezone.utc,
) -> bool:
    """True when no digest has been sent for the current hour of day."""
    return hour_of(now, tz) != state.last_hourly_digest_hour


def mark_digest_sent(state: AlertState, now: datetime, tz: tzinfo = timezone.utc) -> AlertState:
    """Record a successfully delivered hourly digest."""
    return replace(state, last_hourly_digest_hour=hour_of(now, tz))

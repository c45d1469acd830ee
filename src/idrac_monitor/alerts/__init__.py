"""Alert decision engine."""

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

__all__ = [
    "AlertDecision",
    "AlertPolicy",
    "DEFAULT_POLICY",
    "NO_ALERT",
    "commit_alert",
    "decide",
    "mark_digest_sent",
    "should_send_hourly_digest",
]

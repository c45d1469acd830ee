"""Durable storage: alert state, temperature log and trend cache."""

from idrac_monitor.storage.log_store import LogStore
from idrac_monitor.storage.state_store import AlertStateStore
from idrac_monitor.storage.trend_cache import DEFAULT_RETENTION, TrendCache

__all__ = ["AlertStateStore", "DEFAULT_RETENTION", "LogStore", "TrendCache"]

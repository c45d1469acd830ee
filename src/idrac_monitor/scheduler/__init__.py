"""Scheduling for periodic temperature polls."""

from idrac_monitor.scheduler.runner import ScheduledRunner, SchedulerError

__all__ = ["ScheduledRunner", "SchedulerError"]

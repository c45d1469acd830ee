"""Periodic poll runner using APScheduler."""

from datetime import datetime, timezone as dt_timezone
from typing import Any, Callable, Optional

import structlog
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, EVENT_JOB_MISSED
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

log = structlog.get_logger()

POLL_JOB_ID = "poll_job"


class SchedulerError(Exception):
    """Raised when scheduler configuration fails."""

    pass


class ScheduledRunner:
    """APScheduler-based poll loop.

    Supports:
    - Fixed interval polling (seconds)
    - Cron expressions (5-field format)
    - Configurable timezone
    """

    def __init__(
        self,
        timezone: str = "UTC",
        misfire_grace_time: int = 30,
    ) -> None:
        """Initialize scheduler.

        Args:
            timezone: IANA timezone for cron schedules (e.g., 'Asia/Singapore')
            misfire_grace_time: Seconds after scheduled time to still run a missed poll
        """
        self.timezone = timezone
        self.misfire_grace_time = misfire_grace_time
        self._scheduler: Optional[BlockingScheduler] = None

    def _create_scheduler(self) -> BlockingScheduler:
        """Create configured BlockingScheduler."""
        job_defaults = {
            "coalesce": True,
            "misfire_grace_time": self.misfire_grace_time,
            "max_instances": 1,  # a slow poll never overlaps the next one
        }
        return BlockingScheduler(
            timezone=self.timezone,
            job_defaults=job_defaults,
        )

    def _add_interval_job(
        self,
        scheduler: BlockingScheduler,
        func: Callable[[], Any],
        interval: int,
    ) -> None:
        # First poll fires immediately instead of one interval after start
        trigger = IntervalTrigger(seconds=interval, timezone=self.timezone)
        scheduler.add_job(
            func,
            trigger,
            id=POLL_JOB_ID,
            next_run_time=datetime.now(dt_timezone.utc),
        )
        log.info(
            "job_scheduled",
            schedule_type="interval",
            interval_seconds=interval,
        )

    def _add_cron_job(
        self,
        scheduler: BlockingScheduler,
        func: Callable[[], Any],
        cron_expr: str,
    ) -> None:
        """Add job with cron expression (5-field format).

        Raises:
            SchedulerError: If the expression cannot be parsed
        """
        # from_crontab() does not inherit the scheduler timezone
        try:
            trigger = CronTrigger.from_crontab(cron_expr, timezone=self.timezone)
        except ValueError as e:
            raise SchedulerError(f"Invalid cron expression '{cron_expr}': {e}") from e
        scheduler.add_job(func, trigger, id=POLL_JOB_ID)
        log.info(
            "job_scheduled",
            schedule_type="cron",
            cron=cron_expr,
            timezone=self.timezone,
        )

    def run(
        self,
        func: Callable[[], Any],
        interval: Optional[int] = None,
        cron_expr: Optional[str] = None,
    ) -> None:
        """Start the blocking scheduler with the poll job.

        Args:
            func: Function to execute on schedule
            interval: Poll interval in seconds
            cron_expr: Optional cron expression (5-field)

        Raises:
            SchedulerError: If both or neither schedule is given, or the
                interval is not positive
        """
        if interval and cron_expr:
            raise SchedulerError("Cannot specify both a poll interval and a cron expression")
        if not interval and not cron_expr:
            raise SchedulerError("A poll interval or a cron expression is required")
        if interval is not None and interval <= 0:
            raise SchedulerError(f"Poll interval must be positive, got {interval}")

        self._scheduler = self._create_scheduler()

        if cron_expr:
            self._add_cron_job(self._scheduler, func, cron_expr)
        else:
            self._add_interval_job(self._scheduler, func, interval)  # type: ignore[arg-type]

        def on_job_error(event: Any) -> None:
            log.error("job_failed", error=str(event.exception))

        def on_poll_missed(event: Any) -> None:
            reason = "previous_poll_running" if event.code == EVENT_JOB_MAX_INSTANCES else "misfire"
            log.warning("poll_missed", reason=reason, job_id=event.job_id)

        self._scheduler.add_listener(on_job_error, EVENT_JOB_ERROR)
        self._scheduler.add_listener(on_poll_missed, EVENT_JOB_MISSED | EVENT_JOB_MAX_INSTANCES)

        log.info("scheduler_starting", timezone=self.timezone)
        try:
            self._scheduler.start()
        except KeyboardInterrupt:
            log.info("scheduler_shutdown", reason="keyboard interrupt")

    def shutdown(self) -> None:
        """Gracefully shutdown the scheduler."""
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=True)
            log.info("scheduler_shutdown", reason="explicit shutdown")

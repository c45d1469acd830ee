"""Tests for scheduler."""

from unittest.mock import MagicMock, patch

import pytest
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, EVENT_JOB_MISSED
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from idrac_monitor.scheduler.runner import POLL_JOB_ID, ScheduledRunner, SchedulerError


class TestScheduledRunner:
    """Test scheduler runner."""

    def test_init_defaults(self) -> None:
        runner = ScheduledRunner()
        assert runner.timezone == "UTC"
        assert runner.misfire_grace_time == 30

    def test_init_custom_timezone(self) -> None:
        runner = ScheduledRunner(timezone="Asia/Singapore")
        assert runner.timezone == "Asia/Singapore"

    def test_both_interval_and_cron_raises(self) -> None:
        runner = ScheduledRunner()
        with pytest.raises(SchedulerError, match="Cannot specify both"):
            runner.run(func=lambda: None, interval=60, cron_expr="* * * * *")

    def test_neither_schedule_raises(self) -> None:
        runner = ScheduledRunner()
        with pytest.raises(SchedulerError, match="is required"):
            runner.run(func=lambda: None)

    def test_negative_interval_raises(self) -> None:
        runner = ScheduledRunner()
        with pytest.raises(SchedulerError, match="must be positive"):
            runner.run(func=lambda: None, interval=-5)

    @patch("idrac_monitor.scheduler.runner.BlockingScheduler")
    def test_run_with_interval(self, mock_scheduler_class: MagicMock) -> None:
        mock_scheduler = MagicMock()
        mock_scheduler_class.return_value = mock_scheduler
        # runner catches KeyboardInterrupt, so start() returns immediately
        mock_scheduler.start.side_effect = KeyboardInterrupt

        runner = ScheduledRunner(timezone="UTC")
        job_func = MagicMock()
        runner.run(func=job_func, interval=60)

        mock_scheduler.add_job.assert_called_once()
        args, kwargs = mock_scheduler.add_job.call_args
        assert args[0] is job_func
        assert isinstance(args[1], IntervalTrigger)
        assert args[1].interval.total_seconds() == 60
        assert kwargs["id"] == POLL_JOB_ID
        assert kwargs["next_run_time"] is not None

    @patch("idrac_monitor.scheduler.runner.BlockingScheduler")
    def test_run_with_cron(self, mock_scheduler_class: MagicMock) -> None:
        mock_scheduler = MagicMock()
        mock_scheduler_class.return_value = mock_scheduler
        mock_scheduler.start.side_effect = KeyboardInterrupt

        runner = ScheduledRunner(timezone="Asia/Singapore")
        runner.run(func=MagicMock(), cron_expr="*/5 * * * *")

        args, kwargs = mock_scheduler.add_job.call_args
        assert isinstance(args[1], CronTrigger)
        assert str(args[1].timezone) == "Asia/Singapore"
        assert kwargs["id"] == POLL_JOB_ID

    def test_invalid_cron_raises(self) -> None:
        runner = ScheduledRunner()
        with pytest.raises(SchedulerError, match="Invalid cron expression"):
            runner.run(func=lambda: None, cron_expr="not a cron")

    @patch("idrac_monitor.scheduler.runner.BlockingScheduler")
    def test_job_defaults_prevent_overlap(self, mock_scheduler_class: MagicMock) -> None:
        mock_scheduler_class.return_value.start.side_effect = KeyboardInterrupt

        ScheduledRunner(misfire_grace_time=15).run(func=lambda: None, interval=60)

        job_defaults = mock_scheduler_class.call_args.kwargs["job_defaults"]
        assert job_defaults == {"coalesce": True, "misfire_grace_time": 15, "max_instances": 1}

    @patch("idrac_monitor.scheduler.runner.BlockingScheduler")
    def test_listeners_registered(self, mock_scheduler_class: MagicMock) -> None:
        mock_scheduler = mock_scheduler_class.return_value
        mock_scheduler.start.side_effect = KeyboardInterrupt

        ScheduledRunner().run(func=lambda: None, interval=60)

        masks = [c.args[1] for c in mock_scheduler.add_listener.call_args_list]
        assert masks == [EVENT_JOB_ERROR, EVENT_JOB_MISSED | EVENT_JOB_MAX_INSTANCES]

    @patch("idrac_monitor.scheduler.runner.BlockingScheduler")
    def test_missed_poll_logged(
        self, mock_scheduler_class: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        mock_scheduler = mock_scheduler_class.return_value
        mock_scheduler.start.side_effect = KeyboardInterrupt
        ScheduledRunner().run(func=lambda: None, interval=60)

        on_missed = mock_scheduler.add_listener.call_args_list[1].args[0]
        on_missed(MagicMock(code=EVENT_JOB_MAX_INSTANCES, job_id=POLL_JOB_ID))

        out = capsys.readouterr().out
        assert "poll_missed" in out
        assert "previous_poll_running" in out

    def test_shutdown_without_start(self) -> None:
        ScheduledRunner().shutdown()

"""
Entry point for the idrac-monitor CLI.

Usage:
    idrac-monitor                     Run the monitor service (scheduled polls)
    idrac-monitor --run-once          Poll once and exit
    idrac-monitor --test              Validate configuration and sensor access, then exit
    idrac-monitor --test-email        Send a connectivity test notification
    idrac-monitor --digest            Send the hourly digest now (even if already sent)
    idrac-monitor --report            Send an on-demand status report
    idrac-monitor --logs N            Print the N most recent log records
    idrac-monitor --trend             Print the hourly trend buckets
    idrac-monitor --export-logs PATH  Export the temperature log as CSV
    idrac-monitor --ingest VALUE      Record an externally measured temperature
    idrac-monitor --version           Show version and exit

Exit Codes:
    0 - Success
    1 - Configuration error (invalid settings, missing required values)
    2 - Sensor connection error (cannot read a temperature)
    3 - Sensor authentication error (invalid credentials)
    4 - Delivery failure (no notification channel accepted the message)
"""

from __future__ import annotations

import argparse
import signal
import sys
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from types import FrameType

    from idrac_monitor.config import MonitorSettings
    from idrac_monitor.service import MonitorService

from idrac_monitor import __version__

# Service used by the scheduled job; rebuilt on SIGHUP
_service: Optional["MonitorService"] = None

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_CONNECTION_ERROR = 2
EXIT_AUTH_ERROR = 3
EXIT_DELIVERY_ERROR = 4


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="idrac-monitor",
        description="Watch a Dell iDRAC temperature sensor and alert on sustained heat",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit Codes:
  0   Success
  1   Configuration error
  2   Sensor connection error
  3   Sensor authentication error
  4   Delivery failure

Environment Variables:
  CONFIG_PATH                 Path to YAML configuration file
  IDRAC_HOST                  iDRAC hostname or IP
  IDRAC_USERNAME              iDRAC username (default: root)
  IDRAC_PASSWORD              iDRAC password
  IDRAC_PASSWORD_FILE         Path to file containing password (Docker secrets)
  IDRAC_WARNING_THRESHOLD     WARNING at or above this temperature (default: 25)
  IDRAC_CRITICAL_THRESHOLD    CRITICAL at or above this temperature (default: 30)
  IDRAC_POLL_INTERVAL         Poll interval in seconds (default: 60)
  IDRAC_TIMEZONE              Timezone for logs and digests (default: UTC)
  IDRAC_DATA_DIR              Directory for state, log and trend cache
  IDRAC_LOG_LEVEL             Logging level: DEBUG, INFO, WARNING, ERROR
  IDRAC_LOG_FORMAT            Log format: json or text

Examples:
  # Run with config file
  CONFIG_PATH=/etc/idrac-monitor/config.yaml idrac-monitor

  # Test configuration and sensor access
  idrac-monitor --test

  # Record a reading pushed by another sensor
  idrac-monitor --ingest 27.4 --source 10.0.0.12
""",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="YAML configuration file (overrides CONFIG_PATH)",
    )

    modes = parser.add_mutually_exclusive_group()
    modes.add_argument(
        "--test",
        action="store_true",
        help="Test configuration and sensor access, then exit",
    )
    modes.add_argument(
        "--run-once",
        action="store_true",
        help="Run one poll immediately and exit",
    )
    modes.add_argument(
        "--test-email",
        action="store_true",
        help="Send a connectivity test notification, then exit",
    )
    modes.add_argument(
        "--digest",
        action="store_true",
        help="Send the hourly digest now, then exit",
    )
    modes.add_argument(
        "--report",
        action="store_true",
        help="Send an on-demand status report, then exit",
    )
    modes.add_argument(
        "--logs",
        type=int,
        metavar="N",
        help="Print the N most recent temperature log records",
    )
    modes.add_argument(
        "--trend",
        action="store_true",
        help="Print the hourly trend buckets",
    )
    modes.add_argument(
        "--export-logs",
        metavar="PATH",
        help="Export the temperature log as CSV to PATH",
    )
    modes.add_argument(
        "--ingest",
        type=float,
        metavar="VALUE",
        help="Record an externally measured temperature",
    )
    parser.add_argument(
        "--source",
        metavar="TAG",
        help="Source tag for --ingest (e.g. the reporting host's IP)",
    )
    args = parser.parse_args(argv)
    if args.source and args.ingest is None:
        parser.error("--source requires --ingest")
    return args


def handle_sighup(signum: int, frame: Optional[FrameType]) -> None:
    """Reload configuration and rebuild the service on SIGHUP.

    The running service is kept if the new configuration is invalid.
    """
    global _service
    from idrac_monitor.config.loader import ConfigurationError, reload_config
    from idrac_monitor.logging import get_logger
    from idrac_monitor.service import MonitorService

    log = get_logger()
    log.info("received_sighup", action="reloading configuration")
    try:
        config = reload_config()
    except ConfigurationError as e:
        log.error("config_reload_failed", error=e.message)
        return

    previous = _service
    _service = MonitorService.from_settings(config)
    if previous is not None:
        previous.close()
    log.info("config_reloaded", status="success")


def print_banner(config: "MonitorSettings") -> None:
    """Print startup banner with version and configuration summary."""
    if config.schedule_cron:
        schedule = f"cron '{config.schedule_cron}'"
    else:
        schedule = f"every {config.poll_interval}s"

    lines = [
        "",
        f"iDRAC Monitor v{__version__}",
        "=" * 40,
        f"iDRAC:      {config.base_url}",
        f"Thresholds: WARNING >= {config.warning_threshold:.1f}°C, "
        f"CRITICAL >= {config.critical_threshold:.1f}°C",
        f"Schedule:   {schedule} ({config.timezone})",
        f"Data Dir:   {config.data_dir}",
        f"Log Level:  {config.log_level}",
        f"Log Format: {config.log_format}",
        "=" * 40,
        "",
    ]

    for line in lines:
        print(line)


def run_poll_job() -> None:
    """Execute one poll with the current service.

    Called by the scheduler on every tick. All failures inside the poll are
    handled by the service; anything unexpected reaches the scheduler's
    job error listener.
    """
    if _service is None:
        raise RuntimeError("Monitor service not initialized")
    _service.poll()


def run_command(args: argparse.Namespace, service: "MonitorService", config: "MonitorSettings") -> int:
    """Run a one-shot CLI command against the service.

    Returns:
        Exit code
    """
    from idrac_monitor.exceptions import FetchError, MonitorError, PersistenceError
    from idrac_monitor.logging import get_logger
    from idrac_monitor.utils.timestamps import get_zone

    log = get_logger()

    if args.logs is not None:
        for record in service.recent_logs(args.logs):
            print(record.to_line(get_zone(config.timezone)))
        return EXIT_SUCCESS

    if args.trend:
        for key, bucket in service.trend_snapshot():
            print(
                f"{key}  min {bucket.min:5.1f}  avg {bucket.mean:5.1f}  "
                f"max {bucket.max:5.1f}  n={bucket.count:<4d} {bucket.last_status.value}"
            )
        return EXIT_SUCCESS

    if args.export_logs:
        try:
            count = service.export_logs(args.export_logs)
        except MonitorError as e:
            print(f"Export failed: {e}", file=sys.stderr)
            return e.exit_code
        print(f"Exported {count} records to {args.export_logs}")
        return EXIT_SUCCESS

    if args.ingest is not None:
        try:
            reading = service.ingest(args.ingest, source=args.source)
        except ValueError as e:
            print(f"Invalid reading: {e}", file=sys.stderr)
            return EXIT_CONFIG_ERROR
        print(f"Recorded {reading.value:.1f}°C ({reading.status.value}) from {reading.source}")
        return EXIT_SUCCESS

    if args.test_email:
        if not config.email_enabled:
            print("Email delivery is not enabled (set IDRAC_EMAIL_ENABLED=true)", file=sys.stderr)
            return EXIT_CONFIG_ERROR
        if not service.send_test_notification():
            print("Test notification was not delivered", file=sys.stderr)
            return EXIT_DELIVERY_ERROR
        print("Test notification sent")
        return EXIT_SUCCESS

    if args.digest or args.report:
        try:
            delivered = service.send_digest(force=True) if args.digest else service.send_report()
        except FetchError as e:
            log.error("fetch_failed", error=e.message)
            print(f"\nSensor error: {e}", file=sys.stderr)
            return e.exit_code
        except PersistenceError as e:
            print(f"\nStorage error: {e}", file=sys.stderr)
            return e.exit_code
        if not delivered:
            print("Notification was not delivered", file=sys.stderr)
            return EXIT_DELIVERY_ERROR
        print("Digest sent" if args.digest else "Report sent")
        return EXIT_SUCCESS

    if args.run_once:
        print_banner(config)
        result = service.poll()
        reading = result.reading
        if reading is None:
            print(f"\nPoll failed: {result.error}", file=sys.stderr)
            return result.error_code or EXIT_CONNECTION_ERROR
        print(f"{reading.value:.1f}°C {reading.status.value}")
        if result.decision.should_send and not result.alert_sent:
            return EXIT_DELIVERY_ERROR
        return EXIT_SUCCESS

    raise ValueError("No one-shot command selected")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for idrac-monitor.

    Returns:
        Exit code (0=success, 1=config, 2=connection, 3=auth, 4=delivery)
    """
    global _service
    args = parse_args(argv)

    # Import here so --help and --version work without loading configuration
    from idrac_monitor.config.loader import ConfigurationError, load_config
    from idrac_monitor.exceptions import FetchError
    from idrac_monitor.health import HealthStatus, clear_health_status, update_health_status
    from idrac_monitor.logging import configure_logging, get_logger
    from idrac_monitor.scheduler import ScheduledRunner, SchedulerError
    from idrac_monitor.sensor import SensorClient
    from idrac_monitor.service import MonitorService

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    configure_logging(log_format=config.log_format, log_level=config.log_level, host=config.host)
    log = get_logger()

    # Test mode: verify config and sensor access, then exit
    if args.test:
        update_health_status(HealthStatus.STARTING)
        try:
            with SensorClient(config) as client:
                reading = client.fetch_reading()
            print_banner(config)
            print(f"Sensor:      {reading.sensor_name or 'unnamed'}")
            print(f"Temperature: {reading.value:.1f}°C")
            print("Configuration and sensor access: OK")
            return EXIT_SUCCESS
        except FetchError as e:
            log.error("sensor_check_failed", error=e.message)
            print(f"\nSensor error: {e}", file=sys.stderr)
            return e.exit_code
        finally:
            clear_health_status()

    try:
        service = MonitorService.from_settings(config)
    except (ConfigurationError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    one_shot = (
        args.run_once
        or args.test_email
        or args.digest
        or args.report
        or args.trend
        or args.logs is not None
        or args.export_logs is not None
        or args.ingest is not None
    )
    if one_shot:
        try:
            return run_command(args, service, config)
        finally:
            service.close()

    # Service mode
    _service = service
    print_banner(config)
    log.info("starting", version=__version__)
    update_health_status(HealthStatus.STARTING)

    # Config reload (Unix only)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, handle_sighup)

    runner = ScheduledRunner(timezone=config.timezone)
    log.info(
        "service_starting",
        poll_interval=None if config.schedule_cron else config.poll_interval,
        schedule_cron=config.schedule_cron,
        timezone=config.timezone,
    )

    try:
        runner.run(
            func=run_poll_job,
            interval=None if config.schedule_cron else config.poll_interval,
            cron_expr=config.schedule_cron,
        )
        return EXIT_SUCCESS
    except SchedulerError as e:
        log.error("scheduler_config_invalid", error=str(e))
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        log.info("shutdown", reason="keyboard interrupt")
        print("\nShutdown requested, exiting...")
        runner.shutdown()
        return EXIT_SUCCESS
    finally:
        if _service is not None:
            _service.close()
        _service = None
        clear_health_status()


if __name__ == "__main__":
    sys.exit(main())

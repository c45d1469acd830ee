"""Exception taxonomy for iDRAC Monitor.

All exceptions inherit from MonitorError for consistent error handling.
None of them is fatal to the poll loop: a failed fetch skips the tick, a
failed write leaves state stale, a failed delivery is retried on the next
poll.
"""

from typing import Optional


class MonitorError(Exception):
    """Base exception for all monitor errors.

    Attributes:
        message: Human-readable error message.
        hint: Optional troubleshooting hint for operators.
        exit_code: Suggested exit code for CLI applications.
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        hint: Optional[str] = None,
        exit_code: Optional[int] = None,
    ) -> None:
        self.message = message
        self.hint = hint
        if exit_code is not None:
            self.exit_code = exit_code
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with optional hint."""
        if self.hint:
            return f"{self.message}\n\nHint: {self.hint}"
        return self.message


class FetchError(MonitorError):
    """No usable reading could be obtained from the sensor this tick.

    Covers network failures, timeouts, unexpected HTTP status codes and
    payloads without a plausible temperature.
    """

    exit_code: int = 2


class SensorConnectionError(FetchError):
    """Cannot reach the iDRAC Redfish service."""

    def __init__(
        self,
        message: str = "Cannot connect to iDRAC",
        hint: Optional[str] = None,
    ) -> None:
        if hint is None:
            hint = (
                "Is the iDRAC reachable from this host? Check IDRAC_HOST, "
                "network connectivity and firewall rules for HTTPS (443)."
            )
        super().__init__(message=message, hint=hint, exit_code=2)


class SensorAuthenticationError(FetchError):
    """The iDRAC rejected the configured credentials."""

    def __init__(
        self,
        message: str = "iDRAC authentication failed",
        hint: Optional[str] = None,
    ) -> None:
        if hint is None:
            hint = "Verify IDRAC_USERNAME and IDRAC_PASSWORD (or IDRAC_PASSWORD_FILE)."
        super().__init__(message=message, hint=hint, exit_code=3)


class PersistenceError(MonitorError):
    """Writing the alert state, temperature log or trend cache failed."""

    exit_code: int = 1


class DeliveryError(MonitorError):
    """A notification channel failed to deliver a message."""

    exit_code: int = 4

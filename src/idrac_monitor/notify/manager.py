"""Notification orchestration across delivery channels."""

from typing import List, Optional, Protocol

import structlog

from idrac_monitor.notify.email import EmailDelivery, EmailDeliveryError
from idrac_monitor.notify.file import FileDelivery, FileDeliveryError

log = structlog.get_logger()


class Notifier(Protocol):
    """Anything that can deliver a notification and report success."""

    def deliver(
        self,
        subject: str,
        body: str,
        recipients: Optional[List[str]] = None,
    ) -> bool:
        ...


class NotificationManager:
    """Delivers notifications via email and/or file.

    Success means at least one configured channel delivered. When email
    fails, the message is additionally written to the outbox directory so it
    is not lost, but that fallback copy does not count as success: the alert
    engine must keep retrying until an operator channel accepts it.
    """

    def __init__(
        self,
        email_delivery: Optional[EmailDelivery] = None,
        file_delivery: Optional[FileDelivery] = None,
        default_recipients: Optional[List[str]] = None,
        outbox_dir: Optional[str] = None,
    ) -> None:
        """Initialize notification manager.

        Args:
            email_delivery: Configured EmailDelivery instance (None = disabled)
            file_delivery: Configured FileDelivery instance (None = disabled)
            default_recipients: Recipients used when deliver() gets none
            outbox_dir: Directory for undelivered email copies (None = disabled)
        """
        self.email_delivery = email_delivery
        self.file_delivery = file_delivery
        self.default_recipients = list(default_recipients or [])
        self.outbox = FileDelivery(output_dir=outbox_dir) if outbox_dir else None

    @property
    def has_channels(self) -> bool:
        return self.email_delivery is not None or self.file_delivery is not None

    def deliver(
        self,
        subject: str,
        body: str,
        recipients: Optional[List[str]] = None,
    ) -> bool:
        """Deliver a notification via configured channels.

        Args:
            subject: Notification subject
            body: Plain text body
            recipients: Email addresses (default: configured recipients)

        Returns:
            True if at least one channel succeeded, False if all failed
        """
        recipients = list(recipients) if recipients else self.default_recipients
        email_success = False
        file_success = False

        if not self.has_channels:
            log.warning("notification_skipped", reason="no delivery channels configured")
            return False

        if self.email_delivery:
            try:
                self.email_delivery.send(recipients=recipients, subject=subject, body=body)
                email_success = True
            except EmailDeliveryError as e:
                log.error("email_delivery_failed", subject=subject, error=str(e))
                if self.outbox and not self.file_delivery:
                    self._save_to_outbox(subject, body, recipients)

        if self.file_delivery:
            try:
                self.file_delivery.save(subject=subject, body=body, recipients=recipients)
                file_success = True
            except FileDeliveryError as e:
                log.error("file_delivery_failed", subject=subject, error=str(e))

        if not email_success and not file_success:
            log.error("all_delivery_failed", subject=subject)

        return email_success or file_success

    def _save_to_outbox(self, subject: str, body: str, recipients: List[str]) -> None:
        if self.outbox is None:
            return
        try:
            self.outbox.save(subject=subject, body=body, recipients=recipients)
            log.warning("notification_saved_to_outbox", reason="email_failed")
        except FileDeliveryError as e:
            log.error("outbox_write_failed", error=str(e))

"""SMTP email delivery for alerts and reports."""

import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, formatdate
from typing import List, Optional

import structlog

from idrac_monitor.exceptions import DeliveryError

log = structlog.get_logger()


class EmailDeliveryError(DeliveryError):
    """Raised when email delivery fails."""

    pass


class EmailDelivery:
    """SMTP email delivery of plain text notifications to BCC recipients.

    All recipients receive the email via BCC (no To/CC headers exposed).

    Supports:
    - Port 25 relay without TLS (internal mail relays)
    - Port 587 with STARTTLS (explicit TLS)
    - Port 465 with implicit TLS (SMTPS)
    """

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int = 25,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        use_tls: bool = False,
        from_addr: str = "idrac-monitor@localhost",
        from_name: Optional[str] = "iDRAC Monitor",
        timeout: float = 20.0,
    ) -> None:
        """Initialize email delivery.

        Args:
            smtp_host: SMTP server hostname
            smtp_port: SMTP server port (25=relay, 587=STARTTLS, 465=implicit TLS)
            smtp_user: Authentication username
            smtp_password: Authentication password
            use_tls: Enable TLS encryption
            from_addr: Sender email address
            from_name: Display name for the sender
            timeout: Socket timeout in seconds
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.use_tls = use_tls
        self.from_addr = from_addr
        self.from_name = from_name
        self.timeout = timeout

    @property
    def server_label(self) -> str:
        return f"{self.smtp_host}:{self.smtp_port}"

    def build_message(self, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((self.from_name, self.from_addr)) if self.from_name else self.from_addr
        msg["Date"] = formatdate(localtime=True)
        msg["X-Mailer"] = "iDRAC-Monitor"
        # NOTE: No To/Cc headers - all recipients via BCC (hidden)
        msg.set_content(body)
        return msg

    def send(self, recipients: List[str], subject: str, body: str) -> None:
        """Send a plain text email to BCC recipients.

        Args:
            recipients: List of email addresses (all BCC, never shown)
            subject: Email subject line
            body: Plain text body

        Raises:
            EmailDeliveryError: If there are no recipients or sending fails
        """
        if not recipients:
            log.warning("email_skipped", reason="no recipients")
            raise EmailDeliveryError("No email recipients configured")

        msg = self.build_message(subject, body)

        try:
            context = ssl.create_default_context()

            if self.use_tls and self.smtp_port == 465:
                # Implicit TLS (SMTPS) - connection encrypted from start
                with smtplib.SMTP_SSL(
                    self.smtp_host, self.smtp_port, timeout=self.timeout, context=context
                ) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_addr, recipients, msg.as_string())
            else:
                # Explicit TLS (STARTTLS) or plain relay
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                    if self.use_tls:
                        server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_addr, recipients, msg.as_string())

            log.info("email_sent", recipients_count=len(recipients), subject=subject)

        except smtplib.SMTPAuthenticationError as e:
            log.error("email_auth_failed", error=str(e))
            raise EmailDeliveryError(f"SMTP authentication failed: {e}")
        except smtplib.SMTPException as e:
            log.error("email_send_failed", error=str(e))
            raise EmailDeliveryError(f"SMTP error: {e}")
        except OSError as e:
            log.error("email_connection_failed", server=self.server_label, error=str(e))
            raise EmailDeliveryError(f"Cannot reach SMTP server {self.server_label}: {e}")

"""File-based notification delivery with retention management."""

import re
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import structlog

from idrac_monitor.exceptions import DeliveryError
from idrac_monitor.utils.timestamps import get_zone

log = structlog.get_logger()

FILENAME_PREFIX = "idrac-notification-"


class FileDeliveryError(DeliveryError):
    """Raised when file delivery fails."""

    pass


class FileDelivery:
    """Writes each notification to its own text file.

    Used both as an explicit channel and as the outbox fallback when email
    delivery fails.
    """

    def __init__(
        self,
        output_dir: str,
        retention_days: int = 30,
        timezone: str = "UTC",
    ) -> None:
        """Initialize file delivery.

        Args:
            output_dir: Directory path for notification files
            retention_days: Days to retain files (0 = keep forever)
            timezone: Timezone for filename timestamps
        """
        self.output_dir = Path(output_dir)
        self.retention_days = retention_days
        self.timezone = timezone

    def _generate_filename(self, subject: str, created_at: datetime) -> str:
        """Generate datetime-based filename.

        Format: idrac-notification-2026-01-24-143005-idrac-alert-warning.txt
        """
        local = created_at.astimezone(get_zone(self.timezone))
        slug = re.sub(r"[^a-z0-9]+", "-", subject.lower()).strip("-")[:40].rstrip("-")
        return f"{FILENAME_PREFIX}{local.strftime('%Y-%m-%d-%H%M%S')}-{slug or 'message'}.txt"

    def _atomic_write(self, path: Path, content: str) -> None:
        """Write file atomically (write to temp, then rename)."""
        temp_fd, temp_path = tempfile.mkstemp(
            dir=self.output_dir,
            prefix=".tmp-",
            suffix=path.suffix,
        )
        try:
            with open(temp_fd, "w", encoding="utf-8") as f:
                f.write(content)
            shutil.move(temp_path, path)
        except Exception:
            Path(temp_path).unlink(missing_ok=True)
            raise

    def cleanup_old_files(self) -> int:
        """Delete notification files older than retention_days.

        Returns count of files deleted.
        """
        if self.retention_days <= 0:
            return 0

        if not self.output_dir.exists():
            return 0

        cutoff = datetime.now() - timedelta(days=self.retention_days)
        deleted_count = 0

        for file_path in self.output_dir.glob(f"{FILENAME_PREFIX}*.txt"):
            try:
                mtime = datetime.fromtimestamp(file_path.stat().st_mtime)
                if mtime < cutoff:
                    file_path.unlink()
                    deleted_count += 1
            except OSError as e:
                log.warning("cleanup_failed", path=str(file_path), error=str(e))

        if deleted_count > 0:
            log.info(
                "cleanup_complete",
                deleted=deleted_count,
                retention_days=self.retention_days,
            )

        return deleted_count

    def save(
        self,
        subject: str,
        body: str,
        recipients: Optional[List[str]] = None,
        created_at: Optional[datetime] = None,
    ) -> Path:
        """Save one notification to a file.

        Args:
            subject: Notification subject
            body: Plain text body
            recipients: Intended recipients, recorded in the file header
            created_at: Timestamp for the filename (default: now)

        Returns:
            Path of the written file

        Raises:
            FileDeliveryError: If saving fails
        """
        created_at = created_at or datetime.now(timezone.utc)
        header = [f"Subject: {subject}"]
        if recipients:
            header.append(f"To: {', '.join(recipients)}")
        content = "\n".join(header) + "\n\n" + body

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            path = self.output_dir / self._generate_filename(subject, created_at)
            self._atomic_write(path, content)
            log.info("notification_saved", path=str(path))

            self.cleanup_old_files()
            return path

        except PermissionError as e:
            log.error("file_permission_error", path=str(self.output_dir), error=str(e))
            raise FileDeliveryError(f"Permission denied writing to {self.output_dir}: {e}")
        except OSError as e:
            log.error("file_write_error", error=str(e))
            raise FileDeliveryError(f"Failed to write notification file: {e}")

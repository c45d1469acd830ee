"""Alert state persistence with atomic writes for crash-safe storage."""

import json
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

import structlog

from idrac_monitor.exceptions import PersistenceError
from idrac_monitor.models.alert_state import AlertState
from idrac_monitor.storage.locking import InterProcessLock

log = structlog.get_logger()


class AlertStateStore:
    """Reads and writes the alert state file.

    Writes go to a temp file in the same directory followed by a rename, so
    a crash never leaves a half-written state behind. ``transaction()``
    serializes read-modify-write cycles across threads and processes.
    """

    STATE_FILENAME = ".alert_state.json"
    LOCK_FILENAME = ".alert_state.lock"

    def __init__(self, state_dir: Union[str, Path]) -> None:
        """Initialize state store.

        Args:
            state_dir: Directory path for state file storage
        """
        self.state_dir = Path(state_dir)
        self.state_file = self.state_dir / self.STATE_FILENAME
        self._lock = InterProcessLock(self.state_dir / self.LOCK_FILENAME)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Exclusive section for a read -> decide -> notify -> write cycle.

        Raises:
            PersistenceError: If the lock file cannot be opened
        """
        with self._lock.acquire():
            yield

    def read(self) -> AlertState:
        """Read the alert state.

        Returns:
            The persisted state, or the default state if the file is
            missing, corrupted or holds invalid values
        """
        if not self.state_file.exists():
            log.debug("state_file_not_found", path=str(self.state_file))
            return AlertState()

        try:
            data = json.loads(self.state_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            log.warning("state_file_corrupted", path=str(self.state_file), error=str(e))
            return AlertState()
        except OSError as e:
            log.warning("state_file_unreadable", path=str(self.state_file), error=str(e))
            return AlertState()

        if not isinstance(data, dict):
            log.warning("state_file_corrupted", path=str(self.state_file), error="not an object")
            return AlertState()

        try:
            state = AlertState.from_dict(data)
        except (TypeError, ValueError) as e:
            log.warning("state_value_invalid", path=str(self.state_file), error=str(e))
            return AlertState()

        log.debug("state_loaded", path=str(self.state_file), last_status=str(state.last_status))
        return state

    def write(self, state: AlertState) -> None:
        """Write the alert state atomically.

        Raises:
            PersistenceError: If the state cannot be written
        """
        content = json.dumps(state.to_dict(), indent=2) + "\n"

        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            temp_fd, temp_path = tempfile.mkstemp(
                dir=self.state_dir,
                prefix=".tmp-state-",
                suffix=".json",
            )
        except OSError as e:
            log.error("state_write_failed", path=str(self.state_dir), error=str(e))
            raise PersistenceError(f"Cannot write state in {self.state_dir}: {e}") from e

        try:
            with open(temp_fd, "w", encoding="utf-8") as f:
                f.write(content)
            # Atomic rename (same filesystem)
            shutil.move(temp_path, self.state_file)
        except OSError as e:
            Path(temp_path).unlink(missing_ok=True)
            log.error("state_write_failed", path=str(self.state_file), error=str(e))
            raise PersistenceError(f"Cannot write state file {self.state_file}: {e}") from e

        log.debug("state_saved", path=str(self.state_file))

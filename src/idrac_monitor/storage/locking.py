"""Process and thread exclusion for files shared by concurrent pollers."""

import fcntl
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator

from idrac_monitor.exceptions import PersistenceError


class InterProcessLock:
    """Exclusive lock held across threads of this process and other processes.

    Threads are serialized by a ``threading.Lock``; processes by an
    ``flock`` on a sidecar lock file. The lock file is never deleted.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._thread_lock = threading.Lock()

    @contextmanager
    def acquire(self) -> Iterator[None]:
        """Hold the lock for the block.

        Raises:
            PersistenceError: If the lock file cannot be created or opened
        """
        with self._thread_lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                handle = open(self.path, "a+b")
            except OSError as e:
                raise PersistenceError(f"Cannot open lock file {self.path}: {e}") from e
            with handle:
                with flocked(handle):
                    yield


@contextmanager
def flocked(handle: IO[bytes]) -> Iterator[None]:
    """Hold an exclusive ``flock`` on an open file for the block."""
    fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
    try:
        yield
    finally:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

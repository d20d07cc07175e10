"""Per-destination execution lock shared by independent processes.

Each sync run is its own short-lived process. Exclusion is an exclusive
``flock`` on ``run/<name>.lock``; the kernel drops it when the owner exits or
crashes, so a dead run can never block later ones. The file also carries the
owner's PID as text, which ``status`` checks for liveness. A record left
behind by a dead owner is stale and is overwritten by the next run.
"""

import fcntl
import os
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, Optional

import psutil

from ..utils.logging import get_logger

# Attempts when the lock file is replaced between open() and flock()
MAX_OPEN_ATTEMPTS = 3


class LockResult(str, Enum):
    """Outcome of a lock attempt."""
    ACQUIRED = "acquired"
    BUSY = "busy"


def is_process_alive(pid: int) -> bool:
    """Return True if ``pid`` denotes a running (non-zombie) process."""
    if pid <= 0:
        return False
    if not psutil.pid_exists(pid):
        return False
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # Exists but belongs to someone else
        return True


class ExecutionLock:
    """Mutual exclusion for sync runs, keyed by destination name."""

    def __init__(self, run_dir: Path, pid: Optional[int] = None, liveness=is_process_alive):
        """Initialize the lock.

        Args:
            run_dir: Directory holding ``<name>.lock`` records
            pid: Identifier written as owner (defaults to this process)
            liveness: Callable reporting whether a PID is alive
        """
        self.run_dir = Path(run_dir)
        self.pid = pid if pid is not None else os.getpid()
        self.is_alive = liveness
        self._held: Dict[str, int] = {}
        self.logger = get_logger(self.__class__.__name__)

    def path_for(self, name: str) -> Path:
        return self.run_dir / f"{name}.lock"

    def owner(self, name: str) -> Optional[int]:
        """PID recorded in the lock, or None if there is no readable lock."""
        try:
            content = self.path_for(name).read_text().strip()
        except FileNotFoundError:
            return None
        if not content:
            return None
        try:
            return int(content)
        except ValueError:
            return -1

    def is_held(self, name: str) -> bool:
        """True if a live process owns the lock. Never modifies the record."""
        pid = self.owner(name)
        return pid is not None and self.is_alive(pid)

    def try_acquire(self, name: str) -> LockResult:
        """Take the lock for ``name`` unless another run already holds it."""
        if name in self._held:
            return LockResult.BUSY

        self.run_dir.mkdir(parents=True, exist_ok=True)
        for _ in range(MAX_OPEN_ATTEMPTS):
            fd = self._open_locked(name)
            if fd is None:
                pid = self.owner(name)
                self.logger.warning("Sync already running, skipping", destination=name, pid=pid)
                return LockResult.BUSY
            if fd < 0:
                continue

            previous = self._read(fd)
            if previous is not None and previous != self.pid:
                state = "alive" if self.is_alive(previous) else "dead"
                self.logger.info("Replacing stale lock record", destination=name, pid=previous, owner=state)

            os.ftruncate(fd, 0)
            os.lseek(fd, 0, os.SEEK_SET)
            os.write(fd, f"{self.pid}\n".encode())
            os.fsync(fd)
            self._held[name] = fd
            self.logger.debug("Lock acquired", destination=name, pid=self.pid)
            return LockResult.ACQUIRED

        self.logger.warning("Lock file kept changing, skipping", destination=name)
        return LockResult.BUSY

    def release(self, name: str) -> None:
        """Delete the lock record and drop our hold on it.

        Without a hold the record is deleted unconditionally. With one, only
        the file we locked is deleted, never a newer run's record.
        """
        path = self.path_for(name)
        fd = self._held.pop(name, None)
        if fd is None:
            path.unlink(missing_ok=True)
        else:
            try:
                if os.stat(path).st_ino == os.fstat(fd).st_ino:
                    path.unlink()
            except FileNotFoundError:
                pass
            finally:
                os.close(fd)
        self.logger.debug("Lock released", destination=name)

    @contextmanager
    def hold(self, name: str) -> Iterator[LockResult]:
        """Scoped acquisition; releases on every exit path if it was acquired."""
        result = self.try_acquire(name)
        try:
            yield result
        finally:
            if result is LockResult.ACQUIRED:
                self.release(name)

    def _open_locked(self, name: str) -> Optional[int]:
        """Open and flock the lock file.

        Returns the descriptor, None if another run holds the lock, or -1 if
        the file was unlinked or replaced before the flock took effect.
        """
        path = self.path_for(name)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return None

        try:
            current = os.stat(path)
        except FileNotFoundError:
            os.close(fd)
            return -1
        if current.st_ino != os.fstat(fd).st_ino:
            os.close(fd)
            return -1
        return fd

    @staticmethod
    def _read(fd: int) -> Optional[int]:
        os.lseek(fd, 0, os.SEEK_SET)
        content = os.read(fd, 64).decode(errors="replace").strip()
        if not content:
            return None
        try:
            return int(content)
        except ValueError:
            return -1

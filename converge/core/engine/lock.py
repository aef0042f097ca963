"""
Run lock — one convergence run per machine at a time.

The lock is an exclusive ``flock`` on ``converge.lock``, held on an
open descriptor for the whole run.  The kernel drops it when the
process exits, so a crashed run never leaves a stale lock behind.  The
owner PID is written into the file for the refusal message only; it
plays no part in deciding who holds the lock.

The file itself is never unlinked: a process blocked on the old inode
would otherwise lock a file nobody else can see.
"""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path

from converge.core.errors import LockError

logger = logging.getLogger(__name__)

LOCK_FILE = "converge.lock"


class RunLock:
    """Exclusive lock file, usable as a context manager."""

    def __init__(self, path: Path):
        self._path = path
        self._fd: int | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._fd is not None

    def owner(self) -> int | None:
        """PID recorded in the lock file, if any."""
        try:
            return int(self._path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def acquire(self) -> None:
        """Take the lock without waiting.

        Raises:
            LockError: If another run holds it.
        """
        if self._fd is not None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self._path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            pid = self.owner()
            holder = f"pid {pid}" if pid is not None else "pid unknown"
            raise LockError(f"Another converge run ({holder}) holds {self._path}") from None
        except OSError:
            os.close(fd)
            raise

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        logger.debug("Acquired lock %s", self._path)

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            os.ftruncate(fd, 0)
        except OSError as e:
            logger.warning("Could not clear lock %s: %s", self._path, e)
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)
        logger.debug("Released lock %s", self._path)

    def __enter__(self) -> RunLock:
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

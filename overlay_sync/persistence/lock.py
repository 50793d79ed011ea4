"""
State Directory Lock — One sync pass per state directory at a time.

Uses an advisory lock file (fcntl on POSIX, msvcrt on Windows). The lock is
taken without blocking: a second invocation fails fast instead of queuing.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import IO, Optional

try:
    import fcntl  # POSIX systems

    HAVE_FCNTL = True
except ImportError:
    HAVE_FCNTL = False

try:
    import msvcrt  # Windows

    HAVE_MSVCRT = True
except ImportError:
    HAVE_MSVCRT = False

from ..errors import StateLockError

logger = logging.getLogger(__name__)

LOCK_FILENAME = ".overlay-sync.lock"


class StateDirLock:
    """
    Exclusive advisory lock over a state directory.

    Usage:
        with StateDirLock(state_dir):
            ...  # sync pass
    """

    def __init__(self, state_dir: Path):
        self.lock_path = Path(state_dir) / LOCK_FILENAME
        self._file: Optional[IO[str]] = None

    def acquire(self) -> None:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.lock_path, "a+")

        try:
            if HAVE_FCNTL:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            elif HAVE_MSVCRT:
                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError as e:
            handle.close()
            raise StateLockError(
                f"State directory {self.lock_path.parent} is locked by another run"
            ) from e

        handle.seek(0)
        handle.truncate()
        handle.write(f"{os.getpid()}\n")
        handle.flush()
        self._file = handle
        logger.debug(f"[lock] Acquired {self.lock_path}")

    def release(self) -> None:
        if self._file is None:
            return
        try:
            if HAVE_FCNTL:
                fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
            elif HAVE_MSVCRT:
                self._file.seek(0)
                msvcrt.locking(self._file.fileno(), msvcrt.LK_UNLCK, 1)
        finally:
            self._file.close()
            self._file = None
            logger.debug(f"[lock] Released {self.lock_path}")

    def __enter__(self) -> "StateDirLock":
        self.acquire()
        return self

    def __exit__(self, _exc_type, _exc_val, _exc_tb) -> None:
        self.release()

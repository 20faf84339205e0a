"""Process-exclusive lock marker for switch invocations.

The marker is a file that records the owner's PID while the owner holds an
exclusive ``flock`` on it.  The kernel drops the flock when the owner dies,
so a marker left behind by a killed run (or one that never got its PID
written) is free to take without guessing from the recorded PID.
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import os
from typing import TYPE_CHECKING

from ggufswitch.errors import AlreadyRunningError

if TYPE_CHECKING:
    from pathlib import Path
    from types import TracebackType

logger = logging.getLogger(__name__)


class SwitchLock:
    """Scoped exclusive lock; release is guaranteed when used as a context manager.

    Parameters
    ----------
    path:
        Location of the lock marker file.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def holder_pid(self) -> int | None:
        """Return the PID recorded in the marker, or None if unreadable."""
        try:
            return int(self.path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def acquire(self) -> None:
        """Take the lock or fail fast.

        Raises
        ------
        AlreadyRunningError
            If another open handle (in any process) holds the lock.
        """
        if self._fd is not None:
            return
        while True:
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(fd)
                raise AlreadyRunningError(self.path, self.holder_pid()) from None
            # The previous owner unlinks the marker before unlocking; if the
            # path no longer names the inode we locked, start over.
            if self._same_file(fd):
                break
            os.close(fd)

        stale = self._read_fd(fd)
        if stale:
            logger.warning("Reclaiming stale lock %s left by pid %s", self.path, stale)
        os.ftruncate(fd, 0)
        os.pwrite(fd, f"{os.getpid()}\n".encode(), 0)
        self._fd = fd
        logger.debug("Acquired lock %s", self.path)

    def release(self) -> None:
        """Remove the marker and drop the lock if this instance holds it. Idempotent."""
        fd = self._fd
        if fd is None:
            return
        self._fd = None
        try:
            if self._same_file(fd):
                with contextlib.suppress(FileNotFoundError):
                    self.path.unlink()
        finally:
            os.close(fd)
        logger.debug("Released lock %s", self.path)

    def __enter__(self) -> SwitchLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _same_file(self, fd: int) -> bool:
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            return False
        opened = os.fstat(fd)
        return (st.st_dev, st.st_ino) == (opened.st_dev, opened.st_ino)

    @staticmethod
    def _read_fd(fd: int) -> str:
        return os.pread(fd, 64, 0).decode("utf-8", errors="replace").strip()

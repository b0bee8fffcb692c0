"""Exclusive lock around backup, restore and rotation runs."""

import fcntl
import json
import logging
import os
import time
from typing import Optional

from homeserver.utils.errors import LockError, create_error_suggestions

logger = logging.getLogger(__name__)

LOCK_FILENAME = ".lock"


class BackupLock:
    """
    Non-blocking ``flock`` on ``<backups root>/.lock``.

    The kernel releases the lock when the process dies, so a crashed run
    never leaves the lock held. The owner record written next to it is only
    informational.
    """

    def __init__(self, backups_root: str, owner: str = "homeserver-backup"):
        self.path = os.path.join(backups_root, LOCK_FILENAME)
        self.owner = owner
        self._fd: Optional[int] = None

    def acquire(self) -> None:
        """
        Take the lock.

        Raises:
            LockError: If another run holds it
        """
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            os.close(fd)
            raise LockError(
                f"Another backup or restore is already running ({self.path})",
                suggestions=create_error_suggestions("backup_locked", path=self.path),
            ) from e

        os.ftruncate(fd, 0)
        os.write(fd, json.dumps({"owner": self.owner, "pid": os.getpid(), "ts": time.time()}).encode("utf-8"))
        self._fd = fd
        logger.debug("Acquired lock %s", self.path)

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        logger.debug("Released lock %s", self.path)

    def __enter__(self) -> "BackupLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

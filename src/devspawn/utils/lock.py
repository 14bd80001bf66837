"""Host-local advisory lock."""

import fcntl
import logging
import os
import time
from pathlib import Path
from typing import Optional

from devspawn.errors import HostLockedError


logger = logging.getLogger(__name__)


class HostLock:
    """Exclusive ``flock`` on a lock file.

    Serialises container ID allocation and creation between concurrent runs
    on the same host. Usable as a context manager.
    """

    def __init__(self, path: str, timeout: float = 300, poll_interval: float = 0.5):
        self.path = Path(path)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self):
        if self._fd is not None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    raise HostLockedError(
                        f"Another provisioning run holds {self.path}; gave up after {self.timeout}s"
                    )
                time.sleep(self.poll_interval)

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        logger.debug(f"Acquired host lock {self.path}")

    def release(self):
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        logger.debug(f"Released host lock {self.path}")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()

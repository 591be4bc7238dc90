from __future__ import annotations

import fcntl
import os
import time
from pathlib import Path
from typing import Optional

from .errors import LockTimeout


class RunLock:
    """
    Host-wide mutex around mutating runs (fix, monitor, install-monitor,
    uninstall). Backed by flock(2), so a crashed holder releases it.

    Usage:
        with RunLock(path, timeout=30.0):
            ...
    """

    def __init__(self, path: Path, *, timeout: float = 30.0, poll_interval: float = 0.1):
        self._path = path
        self._timeout = timeout
        self._poll = poll_interval
        self._fd: Optional[int] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self._path), os.O_RDWR | os.O_CREAT, 0o644)
        deadline = time.monotonic() + self._timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    raise LockTimeout(
                        code="run.lock_timeout",
                        message=f"Another freeze-guard run holds {self._path}",
                        data={"lock_path": str(self._path), "timeout": self._timeout},
                    )
                time.sleep(self._poll)
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode("ascii"))
        self._fd = fd

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

from __future__ import annotations

import fcntl
import os
from typing import IO, Optional


class SingleWriterError(RuntimeError):
    pass


class SingleWriterLock:
    """
    Enforces a single-process writer for a ledger database.
    Uses an exclusive, non-blocking flock on `<db_path>.lock`.
    """

    def __init__(self, path: str):
        self.path = path
        self._fd: Optional[IO[str]] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        fd = open(self.path, "w")
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            fd.close()
            raise SingleWriterError(f"single-writer lock already held: {self.path}") from e
        self._fd = fd

    def release(self) -> None:
        if self._fd:
            try:
                fcntl.flock(self._fd, fcntl.LOCK_UN)
            finally:
                self._fd.close()
                self._fd = None

    def __enter__(self) -> "SingleWriterLock":
        self.acquire()
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()

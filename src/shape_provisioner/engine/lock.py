"""Single-run lock around the config record."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING

from shape_provisioner.engine.errors import StateLockError

if TYPE_CHECKING:
    from types import TracebackType

try:
    import fcntl  # type: ignore[attr-defined]
except ImportError:  # pragma: no cover
    fcntl = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)


class RecordLock:
    """Exclusive advisory lock held for the duration of one run.

    The lock lives next to the record as ``<record>.lock``. Acquisition is
    retried until *wait* seconds have passed; ``wait=0`` fails immediately
    when another run holds the lock.
    """

    def __init__(self, record_path: Path, *, wait: float = 0.0, interval: float = 0.5) -> None:
        self._lock_path = Path(str(record_path) + ".lock")
        self._wait = wait
        self._interval = interval
        self._file = None

    @property
    def path(self) -> Path:
        return self._lock_path

    def __enter__(self) -> RecordLock:
        if fcntl is None:  # pragma: no cover
            raise StateLockError("Record locking is not supported on this platform")

        # Keep fd open for lifetime of the lock.
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self._lock_path.open("a+", encoding="utf-8")
        try:
            self._acquire()
        except Exception as e:
            try:
                self._file.close()
            finally:
                self._file = None
            if isinstance(e, StateLockError):
                raise
            raise StateLockError(str(e)) from e

        self._file.seek(0)
        self._file.truncate()
        self._file.write(f"{os.getpid()}\n")
        self._file.flush()
        logger.debug("Acquired record lock %s", self._lock_path)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._file is None:
            return
        try:
            fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        finally:
            self._file.close()
            self._file = None
        logger.debug("Released record lock %s", self._lock_path)

    def _acquire(self) -> None:
        assert self._file is not None
        deadline = time.monotonic() + self._wait
        while True:
            try:
                fcntl.flock(self._file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise StateLockError(
                        f"Another run holds {self._lock_path}; only one run may proceed at a time"
                    ) from None
                time.sleep(self._interval)

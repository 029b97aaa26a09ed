"""OS pipe whose read end is drained into a destination by a background thread.

The write end is handed to a child process as its stdout or stderr. While
the child runs, the drain thread copies every chunk it reads into the
destination (possibly a tee of several sinks). ``close()`` is the only way to
know the drain has finished: it returns after the thread has seen EOF (or a
sink failure) and exited.

Lifecycle: OPEN -> DRAINING (thread started) -> CLOSED (close() returned).

Key design points:
- A sink exception is captured, never raised on the drain thread; callers
  read it from ``exception`` after ``close()``
- The drain thread closes the read end as soon as it stops, so a child that
  keeps writing after a sink failure gets EPIPE instead of blocking
- The parent's copy of the write end must be released after spawning,
  otherwise the drain never sees EOF before ``close()``
"""

from __future__ import annotations

import logging
import os
import threading
from enum import Enum
from typing import Any, ClassVar

from .. import destinations
from ..config import get_config
from ..errors import ArgumentError

__all__ = ["MonitoredPipe", "PipeState"]

logger = logging.getLogger(__name__)


class PipeState(str, Enum):
    """Lifecycle state of a MonitoredPipe."""

    OPEN = "open"
    DRAINING = "draining"
    CLOSED = "closed"


class MonitoredPipe:
    """A pipe drained into a destination while a child process writes to it.

    Example:
        buffer = io.BytesIO()
        pipe = MonitoredPipe([buffer, sys.stdout])
        try:
            subprocess.Popen(["ls"], stdout=pipe.fileno()).wait()
            pipe.release_write_end()
        finally:
            pipe.close()
        if pipe.exception:
            raise pipe.exception

    Attributes:
        name: Stream label used in logs and errors ("stdout"/"stderr")
        chunk_size: Maximum bytes read per drain iteration
        destination: Sink receiving the drained bytes
    """

    _open_instances: ClassVar[set[MonitoredPipe]] = set()
    _registry_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(
        self,
        destination: Any = None,
        *,
        name: str = "stdout",
        chunk_size: int | None = None,
        encoding: str = "utf-8",
    ) -> None:
        self.name = name
        self.chunk_size = chunk_size if chunk_size is not None else get_config().chunk_size
        if isinstance(self.chunk_size, bool) or not isinstance(self.chunk_size, int) or self.chunk_size < 1:
            raise ArgumentError(f"chunk_size must be a positive integer but was {self.chunk_size!r}")
        self.destination = destinations.factory(destination, encoding=encoding)

        # _lock guards state and the write end, _read_lock guards the read end
        self._lock = threading.Lock()
        self._read_lock = threading.Lock()
        self._state = PipeState.OPEN
        self._closing = False
        self._exception: Exception | None = None
        self._bytes_written = 0

        self._read_fd: int | None
        self._write_fd: int | None
        try:
            self._read_fd, self._write_fd = os.pipe()
        except OSError:
            self.destination.close()
            raise

        self._thread = threading.Thread(
            target=self._monitor,
            name=f"monitored-pipe-{name}",
            daemon=True,
        )
        try:
            self._state = PipeState.DRAINING
            self._thread.start()
        except BaseException:
            self._close_write_end()
            self._close_read_end()
            self.destination.close()
            raise

        with self._registry_lock:
            self._open_instances.add(self)

        logger.debug(
            f"Opened monitored pipe {self.name} "
            f"read_fd={self._read_fd} write_fd={self._write_fd}"
        )

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def state(self) -> PipeState:
        return self._state

    @property
    def exception(self) -> Exception | None:
        """First exception raised while draining, if any."""
        return self._exception

    @property
    def bytes_written(self) -> int:
        """Bytes successfully handed to the destination."""
        return self._bytes_written

    @property
    def thread(self) -> threading.Thread:
        return self._thread

    @classmethod
    def open_instances(cls) -> list[MonitoredPipe]:
        """Pipes created but not yet closed."""
        with cls._registry_lock:
            return list(cls._open_instances)

    def fileno(self) -> int:
        """File descriptor of the write end, for redirecting a child into it."""
        with self._lock:
            if self._write_fd is None:
                raise ValueError(f"write end of monitored pipe {self.name} is closed")
            return self._write_fd

    # =========================================================================
    # Parent-side operations
    # =========================================================================

    def write(self, data: bytes) -> int:
        """Write data into the pipe from the parent process.

        Raises:
            ValueError: close() has been called or the write end was released
        """
        with self._lock:
            if self._closing or self._write_fd is None:
                raise ValueError(f"monitored pipe {self.name} is closed")
            view = memoryview(data)
            while view:
                written = os.write(self._write_fd, view)
                view = view[written:]
        return len(data)

    def release_write_end(self) -> None:
        """Close the parent's copy of the write end.

        Called once the child holds its own copy, so EOF arrives as soon
        as the child exits.
        """
        with self._lock:
            self._close_write_end()

    def close(self) -> None:
        """Close the write end, wait for the drain to finish, close the sinks.

        Idempotent: later calls return immediately.
        """
        with self._lock:
            if self._closing:
                return
            self._closing = True
            self._close_write_end()

        self._thread.join()
        self._close_read_end()

        try:
            self.destination.close()
        except Exception as e:
            logger.debug(f"Closing destination of monitored pipe {self.name} failed: {e!r}")
            if self._exception is None:
                self._exception = e

        with self._lock:
            self._state = PipeState.CLOSED
        with self._registry_lock:
            self._open_instances.discard(self)

        logger.debug(
            f"Closed monitored pipe {self.name} "
            f"bytes={self._bytes_written} exception={self._exception!r}"
        )

    def __enter__(self) -> MonitoredPipe:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"MonitoredPipe(name={self.name!r}, state={self._state.value}, "
            f"destination={self.destination!r})"
        )

    # =========================================================================
    # Drain thread
    # =========================================================================

    def _monitor(self) -> None:
        """Drain loop: read until EOF or the first failure, feeding the destination."""
        read_fd = self._read_fd
        try:
            while True:
                chunk = os.read(read_fd, self.chunk_size)
                if not chunk:
                    break
                self.destination.write(chunk)
                self._bytes_written += len(chunk)
        except Exception as e:
            logger.debug(f"Monitored pipe {self.name} stopped draining: {e!r}")
            self._exception = e
        finally:
            self._close_read_end()

    def _close_write_end(self) -> None:
        """Close the write end. Caller holds _lock."""
        if self._write_fd is not None:
            fd, self._write_fd = self._write_fd, None
            os.close(fd)

    def _close_read_end(self) -> None:
        with self._read_lock:
            if self._read_fd is not None:
                fd, self._read_fd = self._read_fd, None
                os.close(fd)

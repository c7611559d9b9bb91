"""
Append-only JSON Lines storage for usage events.

Events are buffered in memory and flushed to disk in batches, either when
the buffer reaches its capacity or periodically from a background thread.
Each event is written as a single line of JSON, so the log can be appended
to without rewriting it and read back line by line.
"""

import logging
import os
import threading
from pathlib import Path
from typing import List, Union

from .models import UsageEvent

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_INTERVAL = 30.0
DEFAULT_BUFFER_CAPACITY = 50


class StoreError(Exception):
    """Base class for usage store failures."""


class FlushError(StoreError):
    """Raised when buffered events could not be made durable.

    Covers directory creation, file open, encode, write and sync failures.
    The underlying cause is chained as ``__cause__``.
    """


class LoadError(StoreError):
    """Raised when the usage log exists but cannot be read."""


class JSONStore:
    """Buffered, append-only JSON Lines store for usage events.

    A single lock guards the buffer, flushes and loads, so a flush never
    interleaves with a write or a load. One store instance must own a
    given path; no file locking is performed.
    """

    def __init__(
        self,
        path: Union[str, Path],
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        buffer_capacity: int = DEFAULT_BUFFER_CAPACITY,
    ):
        """Create a store and start its periodic flush thread.

        Args:
            path: File path where usage events are stored
            flush_interval: Seconds between background flushes
            buffer_capacity: Buffered event count that triggers a flush

        Raises:
            ValueError: If flush_interval or buffer_capacity is not positive
        """
        if flush_interval <= 0:
            raise ValueError("flush_interval must be > 0")
        if buffer_capacity < 1:
            raise ValueError("buffer_capacity must be >= 1")

        self.path = Path(path)
        self.flush_interval = flush_interval
        self.buffer_capacity = buffer_capacity

        self._lock = threading.Lock()
        self._buffer: List[UsageEvent] = []
        self._stop = threading.Event()
        self._closed = False
        self._flusher = threading.Thread(
            target=self._periodic_flush,
            name=f"usage-flush:{self.path.name}",
            daemon=True,
        )
        self._flusher.start()

    def __enter__(self) -> "JSONStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def write(self, event: UsageEvent) -> None:
        """Add a usage event to the buffer.

        Only touches the disk when the buffer has just reached its
        capacity, in which case the batch is flushed before returning.

        Args:
            event: The usage event to persist

        Raises:
            FlushError: If the capacity-triggered flush fails
        """
        with self._lock:
            self._buffer.append(event)
            if len(self._buffer) >= self.buffer_capacity:
                self._flush_locked()

    def flush(self) -> None:
        """Write all buffered events to disk and sync them.

        Raises:
            FlushError: If the batch could not be made durable. The buffer
                is left untouched so the next flush retries the batch.
        """
        with self._lock:
            self._flush_locked()

    def _flush_locked(self) -> None:
        """Flush the buffer. Must be called with the lock held."""
        if not self._buffer:
            return

        try:
            payload = "".join(event.to_json() + "\n" for event in self._buffer)
        except (AttributeError, TypeError, ValueError) as e:
            raise FlushError(f"failed to encode event: {e}") from e

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FlushError(f"failed to create directory: {e}") from e

        try:
            fd = os.open(self.path, os.O_APPEND | os.O_CREAT | os.O_WRONLY, 0o600)
        except OSError as e:
            raise FlushError(f"failed to open file: {e}") from e

        try:
            try:
                offset = os.lseek(fd, 0, os.SEEK_END)
            except OSError as e:
                raise FlushError(f"failed to seek file: {e}") from e
            try:
                _write_all(fd, payload.encode("utf-8"))
                os.fsync(fd)
            except OSError as e:
                # Drop partially written lines so a retry cannot duplicate them
                self._rollback(fd, offset)
                raise FlushError(f"failed to write events: {e}") from e

            # The batch is durable; a later close failure must not resend it
            count = len(self._buffer)
            self._buffer.clear()
        finally:
            self._close_fd(fd)

        logger.debug("Flushed %d usage events to %s", count, self.path)

    def _close_fd(self, fd: int) -> None:
        try:
            os.close(fd)
        except OSError as e:
            logger.warning("Failed to close %s after flush: %s", self.path, e)

    def _rollback(self, fd: int, offset: int) -> None:
        try:
            os.ftruncate(fd, offset)
        except OSError as e:
            logger.error("Could not roll back partial batch in %s: %s", self.path, e)

    def _periodic_flush(self) -> None:
        """Flush every ``flush_interval`` seconds until the store is closed."""
        while not self._stop.wait(self.flush_interval):
            try:
                self.flush()
            except FlushError as e:
                logger.warning("Periodic flush error: %s", e)
            except Exception:
                logger.exception("Unexpected error in periodic flush of %s", self.path)

    def load(self) -> List[UsageEvent]:
        """Read all usage events from the log.

        Buffered events that have not been flushed yet are not included;
        call ``flush`` first when full freshness is needed.

        Returns:
            Events in the order they were appended. Empty when the log
            does not exist yet.

        Raises:
            LoadError: If the log exists but cannot be read
        """
        with self._lock:
            if not self.path.exists():
                return []

            events: List[UsageEvent] = []
            try:
                with open(self.path, "r", encoding="utf-8", errors="replace") as f:
                    for line_num, line in enumerate(f, start=1):
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            events.append(UsageEvent.from_json(line))
                        except (ValueError, TypeError) as e:
                            logger.warning(
                                "Failed to parse event on line %d of %s: %s",
                                line_num, self.path, e,
                            )
            except OSError as e:
                raise LoadError(f"failed to read file: {e}") from e

            return events

    def close(self) -> None:
        """Stop the periodic flush thread and flush remaining events.

        Safe to call more than once.

        Raises:
            FlushError: If the final flush fails
        """
        self._stop.set()
        if not self._closed and self._flusher is not threading.current_thread():
            self._flusher.join()
        self._closed = True
        self.flush()

    def buffered_count(self) -> int:
        """Number of events buffered in memory and not yet flushed."""
        with self._lock:
            return len(self._buffer)


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        written = os.write(fd, view)
        view = view[written:]

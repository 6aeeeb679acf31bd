"""The ordered handoff between notification producers and the executor."""

import queue
import threading
from typing import Final


class _Closed:
    """Marker type for the terminal value returned by `DispatchQueue.get`."""

    def __repr__(self) -> str:
        return "CLOSED"


CLOSED: Final = _Closed()
"""Returned by `DispatchQueue.get` once the queue is closed and drained."""


class QueueClosed(RuntimeError):
    """Raised when putting onto a queue that has been closed."""


class DispatchQueue:
    """An unbounded FIFO of repository identifiers with a single consumer.

    `put` never blocks and may be called from any thread. Closing the queue lets the
    consumer drain what was already enqueued and then receive `CLOSED`.
    """

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[str | _Closed] = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, identifier: str) -> None:
        """Enqueues an identifier.

        Raises:
            QueueClosed: If `close` has already been called.
        """
        with self._lock:
            if self._closed:
                raise QueueClosed("Dispatch queue is closed")
            self._queue.put(identifier)

    def get(self, timeout: float | None = None) -> str | _Closed:
        """Blocks until an identifier is available.

        Args:
            timeout (float | None, optional): Seconds to wait. Defaults to forever.

        Returns:
            str | _Closed: The next identifier, or `CLOSED` once the queue is
                           closed and every earlier item has been delivered.

        Raises:
            queue.Empty: If `timeout` elapses with nothing to deliver.
        """
        item = self._queue.get(timeout=timeout)
        if item is CLOSED:
            # Leave the marker in place so later reads also see the end.
            self._queue.put(CLOSED)
        return item

    def close(self) -> None:
        """Stops accepting items. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(CLOSED)

    def qsize(self) -> int:
        """Returns the approximate number of pending identifiers."""
        size = self._queue.qsize()
        return size - 1 if self._closed and size else size

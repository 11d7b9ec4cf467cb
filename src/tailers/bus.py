"""Multiple-producer, single-consumer channel for line events."""
from __future__ import annotations

import logging
import queue
import threading
from typing import Optional, Union

from .errors import BusClosedError
from .events import LineEvent

logger = logging.getLogger(__name__)

_CLOSED = object()

# How long a producer blocked on a full bounded bus waits before re-checking
# whether the bus was closed.
_FULL_RECHECK_SECONDS = 0.5


class EventBus:
    """Fan-in queue shared by every tailer.

    Events from one producer are delivered in the order they were sent; there
    is no ordering across producers. With ``capacity=0`` the bus is unbounded
    and pending events grow without limit while the consumer stalls. A
    positive ``capacity`` makes :meth:`Producer.send` block until the consumer
    frees a slot, so nothing is dropped.

    The bus closes when :meth:`close` is called or when the last producer
    handed out by :meth:`producer` is closed. Events already queued are still
    delivered before :meth:`receive` raises :class:`BusClosedError`.
    """

    def __init__(self, capacity: int = 0):
        if capacity < 0:
            raise ValueError("capacity must be zero (unbounded) or positive")
        self.capacity = capacity
        self._queue: "queue.Queue[Union[LineEvent, object]]" = queue.Queue()
        self._slots: Optional[threading.BoundedSemaphore] = (
            threading.BoundedSemaphore(capacity) if capacity else None
        )
        self._lock = threading.Lock()
        self._producers = 0
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def pending(self) -> int:
        """Approximate number of events waiting for the consumer."""

        size = self._queue.qsize()
        return size - 1 if self._closed.is_set() and size else size

    def producer(self) -> "Producer":
        with self._lock:
            if self._closed.is_set():
                raise BusClosedError("Cannot add a producer to a closed bus")
            self._producers += 1
        return Producer(self)

    def receive(self, timeout: Optional[float] = None) -> LineEvent:
        """Block until the next event arrives.

        Raises :class:`TimeoutError` if ``timeout`` expires first.
        """

        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError(f"No event within {timeout} seconds") from None
        if item is _CLOSED:
            # Leave the marker in place for any later receive call.
            self._queue.put(_CLOSED)
            raise BusClosedError("Event bus is closed")
        if self._slots is not None:
            self._slots.release()
        return item  # type: ignore[return-value]

    def close(self) -> None:
        with self._lock:
            if self._closed.is_set():
                return
            self._closed.set()
            self._queue.put(_CLOSED)
        logger.debug("Event bus closed with %s pending events", self.pending)

    def _send(self, event: LineEvent) -> None:
        if self._closed.is_set():
            raise BusClosedError("Event bus is closed")
        if self._slots is not None:
            while not self._slots.acquire(timeout=_FULL_RECHECK_SECONDS):
                if self._closed.is_set():
                    raise BusClosedError("Event bus closed while waiting for capacity")
        # No event may be queued behind the close marker.
        with self._lock:
            if self._closed.is_set():
                if self._slots is not None:
                    self._slots.release()
                raise BusClosedError("Event bus is closed")
            self._queue.put(event)

    def _release_producer(self) -> None:
        with self._lock:
            self._producers -= 1
            remaining = self._producers
        if remaining == 0:
            logger.debug("Last producer released")
            self.close()


class Producer:
    """Sending handle held by a single tailer."""

    def __init__(self, bus: EventBus):
        self._bus = bus
        self._closed = False

    def send(self, event: LineEvent) -> None:
        if self._closed:
            raise BusClosedError("Producer handle is closed")
        self._bus._send(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus._release_producer()

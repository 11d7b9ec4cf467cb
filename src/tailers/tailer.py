"""Per-file tailing loop turning change notifications into line events."""
from __future__ import annotations

import abc
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .bus import EventBus, Producer
from .config import DEFAULT_CHUNK_SIZE
from .cursor import TailTarget
from .errors import BusClosedError, NotificationSourceError, ReadError
from .events import ChangeNotification, LineEvent
from .watch import Subscription, WatchSource

logger = logging.getLogger(__name__)


class TailerState(str, Enum):
    """Lifecycle of a tailer loop."""

    IDLE = "idle"
    DRAINING = "draining"
    TERMINATED = "terminated"


@dataclass
class TailerStats:
    """Counters kept by each tailer for observability."""

    notifications: int = 0
    drains: int = 0
    lines_emitted: int = 0


class Tailer(abc.ABC):
    """A source of line events that runs on its own until stopped."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        ...

    @abc.abstractmethod
    def start(self) -> None:
        ...

    @abc.abstractmethod
    def stop(self) -> None:
        ...

    @abc.abstractmethod
    def join(self, timeout: Optional[float] = None) -> None:
        ...


class FileTailer(Tailer):
    """Follows one file: waits for write notifications and drains new lines.

    The tailer owns its :class:`TailTarget`; nothing else reads from or moves
    the cursor. The loop runs on a daemon thread and ends when the
    subscription is closed, the notification source fails, reading fails, or
    the bus closes.
    """

    def __init__(
        self,
        target: TailTarget,
        subscription: Subscription,
        producer: Producer,
        *,
        stop_event: Optional[threading.Event] = None,
    ):
        self.target = target
        self.stats = TailerStats()
        self._subscription = subscription
        self._producer = producer
        self._stop_event = stop_event if stop_event is not None else threading.Event()
        self._state = TailerState.IDLE
        self._thread: Optional[threading.Thread] = None
        self.error: Optional[Exception] = None

    @classmethod
    def spawn(
        cls,
        path: Path,
        bus: EventBus,
        watch_source: WatchSource,
        *,
        stop_event: Optional[threading.Event] = None,
        encoding: str = "utf-8",
        errors: str = "replace",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> "FileTailer":
        """Open ``path``, subscribe to its changes and start the loop.

        Raises :class:`OpenError` or :class:`WatchSetupError`; nothing is left
        open when either is raised.
        """

        target = TailTarget.open(path, encoding=encoding, errors=errors, chunk_size=chunk_size)
        try:
            subscription = watch_source.subscribe(target.path)
        except Exception:
            target.close()
            raise
        try:
            producer = bus.producer()
        except BusClosedError:
            subscription.close()
            target.close()
            raise

        tailer = cls(target, subscription, producer, stop_event=stop_event)
        tailer.start()
        return tailer

    @property
    def name(self) -> str:
        return str(self.target.path)

    @property
    def state(self) -> TailerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run,
            name=f"tailer:{self.target.path.name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """Ask the loop to finish; wakes it if it is waiting for a notification."""

        self._stop_event.set()
        self._subscription.close()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        logger.debug("Tailer for %s started at offset %s", self.target.path, self.target.offset)
        try:
            while not self._stop_event.is_set():
                notification = self._subscription.receive()
                if notification is None:
                    break
                self._handle(notification)
        except NotificationSourceError as exc:
            self.error = exc
            logger.error("Notification source for %s failed: %s", self.target.path, exc)
        except ReadError as exc:
            self.error = exc
            logger.error("Stopped tailing %s: %s", self.target.path, exc)
        except BusClosedError:
            logger.debug("Event bus closed; tailer for %s exiting", self.target.path)
        finally:
            self._state = TailerState.TERMINATED
            self._subscription.close()
            self.target.close()
            self._producer.close()
            logger.debug(
                "Tailer for %s terminated after %s notifications, %s lines",
                self.target.path,
                self.stats.notifications,
                self.stats.lines_emitted,
            )

    def _handle(self, notification: ChangeNotification) -> None:
        self.stats.notifications += 1
        if not notification.is_write:
            # Rotation, deletion and moves are not followed.
            logger.debug("Ignoring %s notification for %s", notification.kind.value, self.target.path)
            return

        self._state = TailerState.DRAINING
        self.stats.drains += 1
        for line in self.target.drain():
            self._producer.send(LineEvent(path=self.target.path, line=line))
            self.stats.lines_emitted += 1
        self._state = TailerState.IDLE

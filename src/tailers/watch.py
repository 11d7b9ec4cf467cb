"""Change notifications for individual files, backed by watchdog."""
from __future__ import annotations

import itertools
import logging
import os
import queue
import threading
from pathlib import Path
from typing import Callable, List, Optional, Union

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch

from .errors import NotificationSourceError, WatchSetupError
from .events import ChangeNotification, NotificationKind

logger = logging.getLogger(__name__)

_KIND_BY_EVENT_TYPE = {
    EVENT_TYPE_MODIFIED: NotificationKind.WRITE,
    EVENT_TYPE_CREATED: NotificationKind.CREATED,
    EVENT_TYPE_DELETED: NotificationKind.DELETED,
    EVENT_TYPE_MOVED: NotificationKind.MOVED,
}

_CLOSED = object()


class _Failure:
    def __init__(self, error: NotificationSourceError):
        self.error = error


_Item = Union[ChangeNotification, _Failure, object]


class Subscription:
    """Delivery channel for the notifications of one watched path.

    The watch source publishes into it from its own thread; exactly one
    consumer calls :meth:`receive`. Closing the subscription wakes a blocked
    receiver, which then gets ``None``.
    """

    def __init__(self, path: Path, on_close: Optional[Callable[[], None]] = None):
        self.path = path
        self._queue: "queue.Queue[_Item]" = queue.Queue()
        self._closed = threading.Event()
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def publish(self, notification: ChangeNotification) -> None:
        if self._closed.is_set():
            return
        self._queue.put(notification)

    def fail(self, error: NotificationSourceError) -> None:
        """Report that no further notifications will arrive."""

        if self._closed.is_set():
            return
        self._queue.put(_Failure(error))

    def receive(self, timeout: Optional[float] = None) -> Optional[ChangeNotification]:
        """Block until the next notification.

        Returns ``None`` once the subscription is closed and raises
        :class:`NotificationSourceError` when the source failed.
        """

        if self._closed.is_set():
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError(f"No notification for {self.path} within {timeout} seconds") from None
        if item is _CLOSED:
            return None
        if isinstance(item, _Failure):
            raise item.error
        return item  # type: ignore[return-value]

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self._queue.put(_CLOSED)
        if self._on_close is not None:
            self._on_close()


class _PathEventHandler(FileSystemEventHandler):
    """Filters directory events down to a single file path.

    Events are matched against ``watched``, the symlink-free location of the
    file, while notifications carry the path the subscriber asked for.
    """

    def __init__(
        self,
        subscription: Subscription,
        next_token: Callable[[], int],
        watched: Optional[Path] = None,
    ):
        super().__init__()
        self._subscription = subscription
        self._target = watched if watched is not None else subscription.path
        self._next_token = next_token

    def on_any_event(self, event: FileSystemEvent) -> None:
        src = Path(os.fsdecode(event.src_path))
        if event.is_directory:
            if event.event_type == EVENT_TYPE_DELETED and src == self._target.parent:
                self._subscription.fail(
                    NotificationSourceError(f"Watched directory {src} was removed")
                )
            return

        dest_raw = getattr(event, "dest_path", "")
        dest = Path(os.fsdecode(dest_raw)) if dest_raw else None
        if src != self._target and dest != self._target:
            return

        kind = _KIND_BY_EVENT_TYPE.get(event.event_type, NotificationKind.OTHER)
        self._subscription.publish(
            ChangeNotification(path=self._subscription.path, kind=kind, token=self._next_token())
        )


class WatchSource:
    """Registers non-recursive watches and hands out per-path subscriptions.

    watchdog watches directories, so each file is watched through its parent
    directory and events for sibling entries are filtered out. All
    subscriptions share one observer thread.
    """

    def __init__(self, observer: Optional[BaseObserver] = None):
        self._observer = observer if observer is not None else Observer()
        self._tokens = itertools.count(1)
        self._token_lock = threading.Lock()
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []
        self._started = False
        self._stopped = False

    def subscribe(self, path: Path) -> Subscription:
        target = Path(path).absolute()
        if self._stopped:
            raise WatchSetupError(f"Cannot watch {target}: watch source is stopped")

        # Symlinked logs change in the directory of the file they point to.
        try:
            watched = target.resolve()
        except (OSError, RuntimeError) as exc:
            raise WatchSetupError(f"Cannot resolve {target}: {exc}") from exc
        subscription = Subscription(target)
        handler = _PathEventHandler(subscription, self._next_token, watched)
        try:
            watch = self._observer.schedule(handler, str(watched.parent), recursive=False)
        except OSError as exc:
            raise WatchSetupError(f"Cannot watch {target}: {exc}") from exc

        subscription._on_close = lambda: self._detach(subscription, handler, watch)
        with self._lock:
            self._subscriptions.append(subscription)

        try:
            self._ensure_started()
        except WatchSetupError:
            subscription.close()
            raise
        logger.debug("Watching %s via %s", target, watched.parent)
        return subscription

    def stop(self) -> None:
        """Stop the observer; open subscriptions receive a source failure."""

        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            remaining = list(self._subscriptions)
            self._subscriptions.clear()

        if self._started:
            self._observer.stop()
            self._observer.join()

        for subscription in remaining:
            subscription.fail(NotificationSourceError(f"Watch source for {subscription.path} stopped"))

    @property
    def active(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _ensure_started(self) -> None:
        with self._lock:
            if self._started:
                return
            try:
                self._observer.start()
            except (OSError, RuntimeError) as exc:
                raise WatchSetupError(f"Cannot start the change notification observer: {exc}") from exc
            self._started = True

    def _next_token(self) -> int:
        with self._token_lock:
            return next(self._tokens)

    def _detach(self, subscription: Subscription, handler: _PathEventHandler, watch: ObservedWatch) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
            stopped = self._stopped
        if stopped:
            return
        try:
            self._observer.remove_handler_for_watch(handler, watch)
        except KeyError:  # pragma: no cover - handler already gone
            logger.debug("Handler for %s was already removed", subscription.path)

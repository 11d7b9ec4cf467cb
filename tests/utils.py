"""Test helpers shared across the tailer tests."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Dict, List

from tailers.errors import NotificationSourceError, WatchSetupError
from tailers.events import ChangeNotification, NotificationKind
from tailers.watch import Subscription


class ManualWatchSource:
    """In-memory stand-in for :class:`tailers.watch.WatchSource`.

    Tests decide exactly when a path "changes" by calling :meth:`notify`.
    """

    def __init__(self) -> None:
        self.subscriptions: Dict[Path, Subscription] = {}
        self.refuse: List[Path] = []
        self.stopped = False
        self._token = 0

    def subscribe(self, path: Path) -> Subscription:
        target = Path(path).absolute()
        if target in self.refuse:
            raise WatchSetupError(f"Cannot watch {target}")
        subscription = Subscription(target)
        self.subscriptions[target] = subscription
        return subscription

    def notify(self, path: Path, kind: NotificationKind = NotificationKind.WRITE) -> None:
        self._token += 1
        target = Path(path).absolute()
        self.subscriptions[target].publish(ChangeNotification(path=target, kind=kind, token=self._token))

    def fail(self, path: Path, message: str = "watch descriptor invalidated") -> None:
        self.subscriptions[Path(path).absolute()].fail(NotificationSourceError(message))

    def stop(self) -> None:
        self.stopped = True


def append(path: Path, data: str) -> None:
    with path.open("ab") as handle:
        handle.write(data.encode("utf-8"))


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()

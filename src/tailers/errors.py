"""Exception hierarchy shared by the tailing components."""
from __future__ import annotations


class TailerError(Exception):
    """Base class for tailing failures."""


class OpenError(TailerError):
    """Raised when a path cannot be opened for tailing."""


class WatchSetupError(TailerError):
    """Raised when a change notification cannot be registered for a path."""


class ReadError(TailerError):
    """Raised when reading new bytes from a tailed file fails."""


class NotificationSourceError(TailerError):
    """Raised when the change notification backend stops delivering."""


class BusClosedError(TailerError):
    """Raised when the event bus has no producers left or was closed."""

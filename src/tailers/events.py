"""Event models shared across tailing components."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class NotificationKind(str, Enum):
    """Kinds of filesystem changes reported by the watch source."""

    WRITE = "write"
    CREATED = "created"
    DELETED = "deleted"
    MOVED = "moved"
    OTHER = "other"


@dataclass(frozen=True)
class ChangeNotification:
    """A signal that a watched path may have changed."""

    path: Path
    kind: NotificationKind
    token: int = 0

    @property
    def is_write(self) -> bool:
        return self.kind is NotificationKind.WRITE


@dataclass(frozen=True)
class LineEvent:
    """A single complete line read from a tailed file."""

    path: Path
    line: str

    def format(self, template: str) -> str:
        return template.format(path=self.path, line=self.line)

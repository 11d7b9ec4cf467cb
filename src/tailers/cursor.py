"""Byte cursor over a growing file that yields complete lines only."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from .config import DEFAULT_CHUNK_SIZE
from .errors import OpenError, ReadError

logger = logging.getLogger(__name__)

_NEWLINE = b"\n"
_CARRIAGE_RETURN = b"\r"


class TailTarget:
    """Read cursor, open handle and partial-line buffer for one tailed file.

    ``offset`` counts every byte read from the file so far, which is the bytes
    already emitted as complete lines plus the bytes still held in the partial
    buffer. Instances are not thread-safe; each one belongs to a single tailer.
    """

    def __init__(
        self,
        path: Path,
        handle: BinaryIO,
        offset: int,
        *,
        encoding: str = "utf-8",
        errors: str = "replace",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.path = path
        self.offset = offset
        self.encoding = encoding
        self.errors = errors
        self.chunk_size = chunk_size
        self._handle: Optional[BinaryIO] = handle
        self._partial = bytearray()

    @classmethod
    def open(
        cls,
        path: Path,
        *,
        encoding: str = "utf-8",
        errors: str = "replace",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> "TailTarget":
        """Open ``path`` read-only, positioned at its current end."""

        resolved = Path(path).absolute()
        if resolved.is_dir():
            raise OpenError(f"Cannot tail a directory: {resolved}")
        try:
            handle = resolved.open("rb")
        except OSError as exc:
            raise OpenError(f"Cannot open {resolved} for tailing: {exc}") from exc

        try:
            offset = handle.seek(0, os.SEEK_END)
        except OSError as exc:
            handle.close()
            raise OpenError(f"Cannot seek to the end of {resolved}: {exc}") from exc

        logger.debug("Opened %s at offset %s", resolved, offset)
        return cls(
            resolved,
            handle,
            offset,
            encoding=encoding,
            errors=errors,
            chunk_size=chunk_size,
        )

    @property
    def partial(self) -> bytes:
        """Bytes read after the last line terminator."""

        return bytes(self._partial)

    @property
    def consumed(self) -> int:
        """Offset just past the last line terminator emitted."""

        return self.offset - len(self._partial)

    @property
    def closed(self) -> bool:
        return self._handle is None

    def drain(self) -> Iterator[str]:
        """Yield every complete line appended since the previous drain.

        Reading stops at the current end of file. Trailing bytes without a
        terminator stay buffered until a later drain completes them. The
        generator can be abandoned early without losing lines: anything not
        yet yielded is kept in the buffer.
        """

        while True:
            yield from self._split_buffered()
            chunk = self._read_chunk()
            if not chunk:
                return
            self.offset += len(chunk)
            self._partial.extend(chunk)

    def close(self) -> None:
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        try:
            handle.close()
        except OSError as exc:  # pragma: no cover - close failures are only logged
            logger.warning("Failed to close %s: %s", self.path, exc)

    def _split_buffered(self) -> Iterator[str]:
        while True:
            index = self._partial.find(_NEWLINE)
            if index < 0:
                return
            raw = bytes(self._partial[:index])
            if raw.endswith(_CARRIAGE_RETURN):
                raw = raw[:-1]
            try:
                line = raw.decode(self.encoding, self.errors)
            except UnicodeDecodeError as exc:
                raise ReadError(f"Cannot decode line from {self.path}: {exc}") from exc
            del self._partial[: index + 1]
            yield line

    def _read_chunk(self) -> bytes:
        if self._handle is None:
            raise ReadError(f"{self.path} is closed")
        try:
            return self._handle.read(self.chunk_size)
        except (OSError, ValueError) as exc:
            raise ReadError(f"Failed to read {self.path}: {exc}") from exc

    def __repr__(self) -> str:
        return f"TailTarget(path={str(self.path)!r}, offset={self.offset}, partial={len(self._partial)})"

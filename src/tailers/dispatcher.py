"""Main loop: start one tailer per file and print every line they produce."""
from __future__ import annotations

import logging
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional, TextIO

from .bus import EventBus
from .config import TailConfig, build_config
from .errors import BusClosedError, OpenError, WatchSetupError
from .tailer import FileTailer, Tailer
from .watch import WatchSource

logger = logging.getLogger(__name__)


@dataclass
class DispatcherStats:
    """Counters emitted by the dispatcher for observability."""

    events_delivered: int = 0
    sources_skipped: int = 0


class Dispatcher:
    """Owns the tailer registry and drains the event bus to an output stream."""

    def __init__(
        self,
        config: TailConfig,
        *,
        watch_source: Optional[WatchSource] = None,
        output: Optional[TextIO] = None,
    ):
        self._config = config
        self._watch_source = watch_source if watch_source is not None else WatchSource()
        self._output = output
        self._bus = EventBus(capacity=config.bus_capacity)
        self._stop_event = threading.Event()
        self._tailers: List[Tailer] = []
        self._stats = DispatcherStats()

    @property
    def tailers(self) -> List[Tailer]:
        return list(self._tailers)

    @property
    def stats(self) -> DispatcherStats:
        return self._stats

    def start(self) -> None:
        """Spawn a tailer for every configured file."""

        if self._tailers:
            return
        for path in self._config.files:
            logger.info("Adding file %s", path)
            try:
                tailer = FileTailer.spawn(
                    path,
                    self._bus,
                    self._watch_source,
                    stop_event=self._stop_event,
                    encoding=self._config.encoding,
                    errors=self._config.errors,
                    chunk_size=self._config.chunk_size,
                )
            except (OpenError, WatchSetupError) as exc:
                if self._config.strict_startup:
                    self.stop()
                    raise
                logger.warning("Skipping %s: %s", path, exc)
                self._stats.sources_skipped += 1
                continue
            self._tailers.append(tailer)

        if not self._tailers:
            self.stop()
            raise OpenError("No files could be tailed")

        logger.info("Watching %s sources", len(self._tailers))

    def run(self) -> None:
        """Start the tailers and print events until stopped.

        Raises :class:`BusClosedError` if every tailer terminated on its own.
        """

        output = self._output if self._output is not None else sys.stdout
        try:
            self.start()
            while True:
                try:
                    event = self._bus.receive()
                except BusClosedError:
                    if self._stop_event.is_set():
                        break
                    raise
                output.write(event.format(self._config.line_format) + "\n")
                output.flush()
                self._stats.events_delivered += 1
        except KeyboardInterrupt:
            logger.info("Interrupted by user")
        finally:
            self.stop()
            logger.info(
                "Dispatcher stopped after delivering %s events",
                self._stats.events_delivered,
            )

    def stop(self) -> None:
        """Signal every tailer to finish and close the bus."""

        if self._stop_event.is_set():
            return
        self._stop_event.set()
        for tailer in self._tailers:
            tailer.stop()
        self._bus.close()
        self._watch_source.stop()

    def join(self, timeout: Optional[float] = None) -> None:
        for tailer in self._tailers:
            tailer.join(timeout)


def run(paths: Iterable[Path], *, output: Optional[TextIO] = None, **options: Any) -> None:
    """Tail ``paths`` until interrupted, writing ``path: line`` records."""

    config = build_config([str(path) for path in paths], **options)
    Dispatcher(config, output=output).run()

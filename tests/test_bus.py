"""Tests for the fan-in event bus."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from tailers.bus import EventBus
from tailers.errors import BusClosedError
from tailers.events import LineEvent


def _event(name: str, line: str) -> LineEvent:
    return LineEvent(path=Path("/var/log") / name, line=line)


class TestEventBus:
    def test_per_producer_order(self) -> None:
        bus = EventBus()
        first = bus.producer()
        second = bus.producer()

        def produce(producer, name: str) -> None:
            for index in range(200):
                producer.send(_event(name, str(index)))

        threads = [
            threading.Thread(target=produce, args=(first, "a.log")),
            threading.Thread(target=produce, args=(second, "b.log")),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        received = [bus.receive(timeout=1) for _ in range(400)]
        for name in ("a.log", "b.log"):
            lines = [event.line for event in received if event.path.name == name]
            assert lines == [str(index) for index in range(200)]

    def test_closes_after_last_producer(self) -> None:
        bus = EventBus()
        first = bus.producer()
        second = bus.producer()
        first.send(_event("a.log", "one"))
        first.close()
        assert not bus.closed
        second.close()
        assert bus.closed

        assert bus.receive(timeout=1).line == "one"
        with pytest.raises(BusClosedError):
            bus.receive(timeout=1)
        with pytest.raises(BusClosedError):
            bus.receive(timeout=1)

    def test_producer_close_is_idempotent(self) -> None:
        bus = EventBus()
        producer = bus.producer()
        keeper = bus.producer()
        producer.close()
        producer.close()
        assert not bus.closed
        keeper.close()
        assert bus.closed

    def test_send_after_close(self) -> None:
        bus = EventBus()
        producer = bus.producer()
        bus.close()
        with pytest.raises(BusClosedError):
            producer.send(_event("a.log", "late"))
        with pytest.raises(BusClosedError):
            bus.producer()

    def test_no_event_after_close_marker(self) -> None:
        bus = EventBus()
        producers = [bus.producer() for _ in range(4)]
        started = threading.Barrier(len(producers) + 1)

        def produce(producer, name: str) -> None:
            started.wait()
            index = 0
            while True:
                try:
                    producer.send(_event(name, str(index)))
                except BusClosedError:
                    return
                index += 1

        threads = [
            threading.Thread(target=produce, args=(producer, f"{index}.log"))
            for index, producer in enumerate(producers)
        ]
        for thread in threads:
            thread.start()
        started.wait()
        bus.close()
        for thread in threads:
            thread.join(5)

        with pytest.raises(BusClosedError):
            while True:
                bus.receive(timeout=1)
        for _ in range(3):
            with pytest.raises(BusClosedError):
                bus.receive(timeout=1)

    def test_receive_timeout(self) -> None:
        bus = EventBus()
        bus.producer()
        with pytest.raises(TimeoutError):
            bus.receive(timeout=0.05)

    def test_rejects_negative_capacity(self) -> None:
        with pytest.raises(ValueError):
            EventBus(capacity=-1)


class TestBoundedBus:
    def test_send_blocks_until_consumer_frees_a_slot(self) -> None:
        bus = EventBus(capacity=1)
        producer = bus.producer()
        producer.send(_event("a.log", "first"))

        sent = threading.Event()

        def send_second() -> None:
            producer.send(_event("a.log", "second"))
            sent.set()

        thread = threading.Thread(target=send_second)
        thread.start()
        assert not sent.wait(0.2)
        assert bus.pending == 1

        assert bus.receive(timeout=1).line == "first"
        assert sent.wait(2)
        assert bus.receive(timeout=1).line == "second"
        thread.join(1)

    def test_blocked_send_gives_up_when_closed(self) -> None:
        bus = EventBus(capacity=1)
        producer = bus.producer()
        producer.send(_event("a.log", "first"))
        errors = []

        def send_second() -> None:
            try:
                producer.send(_event("a.log", "second"))
            except BusClosedError as exc:
                errors.append(exc)

        thread = threading.Thread(target=send_second)
        thread.start()
        bus.close()
        thread.join(3)
        assert not thread.is_alive()
        assert len(errors) == 1

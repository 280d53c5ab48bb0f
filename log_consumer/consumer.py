"""Periodic consumer: tails the access log and feeds status deltas to the counter."""

import logging
import threading
from typing import Protocol

from log_consumer.counter import StatusCounter
from log_consumer.parsers import parse_line
from log_consumer.sink import SinkError
from log_consumer.tailer import TailerError

logger = logging.getLogger(__name__)


class ConsumerError(Exception):
    """A tick failed and the consume loop has stopped."""


class Tailer(Protocol):
    def next(self) -> bytes:
        ...


class Consumer:
    """Runs one tick per ``period`` seconds until stopped or a tick fails.

    Each tick reads the newly appended bytes, counts records per status
    (ignoring records older than the counter's epoch) and merges the counts
    into the counter. Ticks never overlap; a slow tick simply delays the next.
    """

    def __init__(self, period: float, tailer: Tailer, counter: StatusCounter,
                 stop_event: threading.Event | None = None):
        self.period = period
        self._tailer = tailer
        self._counter = counter
        self._stop = stop_event or threading.Event()
        self._ticks = 0

    @property
    def ticks(self) -> int:
        return self._ticks

    def consume_bytes(self, data: bytes) -> dict[str, int]:
        """Count records in *data* and merge the counts into the counter."""
        epoch = self._counter.epoch
        status_counts: dict[str, int] = {}

        for line in data.splitlines():
            if not line.strip():
                continue
            record = parse_line(line)
            if record is None:
                continue
            if record.timestamp < epoch:
                continue
            status_counts[record.status] = status_counts.get(record.status, 0) + 1

        logger.info("Captured status code counters: %s", status_counts)
        self._counter.merge(status_counts)
        return status_counts

    def tick(self) -> dict[str, int]:
        try:
            data = self._tailer.next()
        except TailerError as e:
            raise ConsumerError(f"Could not retrieve log content: {e}") from e

        try:
            counts = self.consume_bytes(data)
        except SinkError as e:
            raise ConsumerError(f"Could not export log content: {e}") from e

        self._ticks += 1
        return counts

    def run(self):
        """Block until stop() is called; raises ConsumerError on the first failed tick."""
        while not self._stop.wait(self.period):
            self.tick()
        logger.info("Consumer stopped after %d ticks", self._ticks)

    def stop(self):
        """Ask the loop to exit before its next tick. Safe to call from any thread."""
        self._stop.set()

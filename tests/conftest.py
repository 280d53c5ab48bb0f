"""Shared fixtures and fakes for the log consumer test suite."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from log_consumer.counter import StatusCounter
from log_consumer.models import MonitoredResource
from log_consumer.sink import SinkError
from log_consumer.tailer import TailerError

EPOCH = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


def log_line(when: datetime, status: str, **extra) -> bytes:
    """Encode one access log record the way nginx writes it."""
    entry = {"time": when.isoformat(timespec="seconds"), "status": status}
    entry.update(extra)
    return (json.dumps(entry) + "\n").encode()


class RecordingSink:
    """In-memory MetricSink that remembers every call."""

    def __init__(self):
        self.descriptors = []
        self.writes = []
        self.fail = False

    def create_metric_descriptor(self, project_name, descriptor):
        if self.fail:
            raise SinkError("descriptor rejected")
        self.descriptors.append((project_name, descriptor))

    def write_time_series(self, project_name, points):
        if self.fail:
            raise SinkError("write rejected")
        self.writes.append((project_name, list(points)))

    def last_values(self) -> dict[str, int]:
        _, points = self.writes[-1]
        return {p.labels["response_code"]: p.value for p in points}


class FakeTailer:
    """Returns queued chunks in order, then empty bytes."""

    def __init__(self, chunks=None):
        self.chunks = list(chunks or [])
        self.calls = 0
        self.error = None

    def next(self) -> bytes:
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.chunks:
            return self.chunks.pop(0)
        return b""

    def fail_with(self, message: str = "gone"):
        self.error = TailerError(message)


@pytest.fixture()
def resource() -> MonitoredResource:
    return MonitoredResource(type="gce_instance", labels={"instance_id": "web-1", "zone": "us-central1-a"})


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def counter(sink, resource) -> StatusCounter:
    """A counter whose epoch is EPOCH and whose clock then advances a second per call."""
    ticks = iter(EPOCH + timedelta(seconds=i) for i in range(10_000))
    return StatusCounter(sink, "my-project", resource, clock=lambda: next(ticks))

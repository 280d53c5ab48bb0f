"""Cumulative HTTP response status counter exported through a MetricSink."""

import logging
from datetime import datetime, timezone

from log_consumer.models import (
    LabelDescriptor,
    MetricDescriptor,
    MonitoredResource,
    TimeSeriesPoint,
)
from log_consumer.sink import MetricSink

logger = logging.getLogger(__name__)

# Custom cumulative metric to which status counts are written.
STATUS_COUNT_METRIC = "custom.googleapis.com/http_response_count"
STATUS_LABEL = "response_code"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def project_resource_spec(project_id: str) -> str:
    """Format a project ID for use as a monitoring API scope."""
    return f"projects/{project_id}"


class StatusCounter:
    """Running per-status totals since a fixed reset time (the epoch).

    Every merged delta is added to the totals. A snapshot of all totals is
    written only when the delta carried at least one positive count, so
    quiet periods cost no sink calls.
    """

    def __init__(self, sink: MetricSink, project_id: str, resource: MonitoredResource,
                 clock=_utc_now):
        self._sink = sink
        self._project_spec = project_resource_spec(project_id)
        self._resource = resource
        self._clock = clock
        self._counts: dict[str, int] = {}
        self._reset_time = clock()

    @property
    def epoch(self) -> datetime:
        """Time since which counts have been accumulated."""
        return self._reset_time

    @property
    def counts(self) -> dict[str, int]:
        return dict(self._counts)

    @property
    def project_spec(self) -> str:
        return self._project_spec

    def create_descriptor(self):
        """Register the cumulative status count metric with the sink."""
        desc = MetricDescriptor(
            type=STATUS_COUNT_METRIC,
            metric_kind="CUMULATIVE",
            value_type="INT64",
            description="Cumulative count of HTTP responses by status code.",
            labels=(
                LabelDescriptor(key=STATUS_LABEL, value_type="STRING",
                                description="HTTP status code"),
            ),
        )
        self._sink.create_metric_descriptor(self._project_spec, desc)

    def merge(self, delta: dict[str, int]):
        """Accumulate status count deltas and write a new snapshot if any are positive."""
        negative = {status: n for status, n in delta.items() if n < 0}
        if negative:
            raise ValueError(f"status count deltas must be non-negative: {negative}")

        has_delta = False
        for status, n in delta.items():
            if n > 0:
                has_delta = True
            self._counts[status] = self._counts.get(status, 0) + n

        if not has_delta:
            return

        self._write()

    def snapshot(self) -> list[TimeSeriesPoint]:
        """One point per tracked status covering [epoch, now]."""
        now = self._clock()
        return [
            TimeSeriesPoint(
                metric_type=STATUS_COUNT_METRIC,
                labels={STATUS_LABEL: status},
                resource=self._resource,
                start_time=self._reset_time,
                end_time=now,
                value=count,
            )
            for status, count in self._counts.items()
        ]

    def _write(self):
        points = self.snapshot()
        self._sink.write_time_series(self._project_spec, points)
        logger.debug("Exported %d cumulative status counts", len(points))

"""Data models shared by the tailer, consumer, counter and sinks."""

import os
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class FileIdentity:
    """Identifies an underlying file independent of the path it is reached by."""

    device: int
    inode: int

    @classmethod
    def from_stat(cls, st: os.stat_result) -> "FileIdentity":
        return cls(device=st.st_dev, inode=st.st_ino)


@dataclass
class TailState:
    path: str
    identity: FileIdentity
    offset: int = 0
    partial: bytes = b""    # trailing bytes not yet terminated by a newline


@dataclass(frozen=True)
class LogRecord:
    timestamp: datetime     # timezone-aware
    status: str


@dataclass(frozen=True)
class MonitoredResource:
    type: str
    labels: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class LabelDescriptor:
    key: str
    value_type: str
    description: str = ""


@dataclass(frozen=True)
class MetricDescriptor:
    type: str
    metric_kind: str
    value_type: str
    description: str = ""
    labels: tuple[LabelDescriptor, ...] = ()


@dataclass(frozen=True)
class TimeSeriesPoint:
    """One cumulative data point for a single labelled series."""

    metric_type: str
    labels: dict[str, str]
    resource: MonitoredResource
    start_time: datetime
    end_time: datetime
    value: int

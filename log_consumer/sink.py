"""Metric sinks: where cumulative counter snapshots are written."""

import logging
from datetime import datetime, timezone
from typing import Protocol

import google.auth
import google.auth.exceptions
import requests
from google.auth.transport.requests import AuthorizedSession

from log_consumer.models import MetricDescriptor, TimeSeriesPoint

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://monitoring.googleapis.com/v3"
MONITORING_SCOPE = "https://www.googleapis.com/auth/monitoring"


class SinkError(Exception):
    """A descriptor creation or time series write was rejected or failed."""


class MetricSink(Protocol):
    def create_metric_descriptor(self, project_name: str, descriptor: MetricDescriptor) -> None:
        ...

    def write_time_series(self, project_name: str, points: list[TimeSeriesPoint]) -> None:
        ...


def format_time(t: datetime) -> str:
    """RFC 3339 in UTC with a ``Z`` suffix, as the monitoring API expects."""
    return t.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def descriptor_to_dict(descriptor: MetricDescriptor) -> dict:
    return {
        "type": descriptor.type,
        "metricKind": descriptor.metric_kind,
        "valueType": descriptor.value_type,
        "description": descriptor.description,
        "labels": [
            {"key": l.key, "valueType": l.value_type, "description": l.description}
            for l in descriptor.labels
        ],
    }


def point_to_dict(point: TimeSeriesPoint) -> dict:
    return {
        "metric": {"type": point.metric_type, "labels": dict(point.labels)},
        "resource": {"type": point.resource.type, "labels": dict(point.resource.labels)},
        "points": [
            {
                "interval": {
                    "startTime": format_time(point.start_time),
                    "endTime": format_time(point.end_time),
                },
                # int64 values travel as JSON strings
                "value": {"int64Value": str(point.value)},
            }
        ],
    }


def authorized_session(credentials=None) -> AuthorizedSession:
    """Session that attaches and refreshes OAuth tokens for the monitoring scope."""
    if credentials is None:
        try:
            credentials, _ = google.auth.default(scopes=[MONITORING_SCOPE])
        except google.auth.exceptions.DefaultCredentialsError as e:
            raise SinkError(f"Could not load application default credentials: {e}") from e
    return AuthorizedSession(credentials)


class LoggingMetricSink:
    """Writes descriptors and points to the log instead of a backend."""

    def __init__(self, level: int = logging.INFO):
        self._level = level

    def create_metric_descriptor(self, project_name: str, descriptor: MetricDescriptor) -> None:
        logger.log(self._level, "[%s] metric descriptor %s (%s/%s)", project_name,
                   descriptor.type, descriptor.metric_kind, descriptor.value_type)

    def write_time_series(self, project_name: str, points: list[TimeSeriesPoint]) -> None:
        for p in points:
            logger.log(self._level, "[%s] %s %s = %d [%s, %s]", project_name, p.metric_type,
                       p.labels, p.value, format_time(p.start_time), format_time(p.end_time))


class HttpMetricSink:
    """Posts Cloud Monitoring v3 JSON requests over HTTP.

    ``token`` is sent as a fixed OAuth bearer token when given. Otherwise
    requests go through an ``AuthorizedSession`` built from ``credentials``
    or, if none are passed, Application Default Credentials, which refresh
    their access token as it expires. Calls are synchronous and not retried;
    any transport, auth or non-2xx error raises SinkError.
    """

    def __init__(self, endpoint: str = DEFAULT_ENDPOINT, token: str = "",
                 session: requests.Session | None = None, credentials=None):
        self._endpoint = endpoint.rstrip("/")
        if session is None:
            session = requests.Session() if token else authorized_session(credentials)
        self._session = session
        self._session.headers["Content-Type"] = "application/json"
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    def create_metric_descriptor(self, project_name: str, descriptor: MetricDescriptor) -> None:
        self._post(f"{project_name}/metricDescriptors", descriptor_to_dict(descriptor))
        logger.info("Created metric descriptor %s in %s", descriptor.type, project_name)

    def write_time_series(self, project_name: str, points: list[TimeSeriesPoint]) -> None:
        body = {"timeSeries": [point_to_dict(p) for p in points]}
        self._post(f"{project_name}/timeSeries", body)
        logger.debug("Wrote %d time series to %s", len(points), project_name)

    def close(self):
        self._session.close()

    def _post(self, path: str, body: dict):
        url = f"{self._endpoint}/{path}"
        try:
            response = self._session.post(url, json=body)
            response.raise_for_status()
        except (requests.exceptions.RequestException,
                google.auth.exceptions.GoogleAuthError) as e:
            raise SinkError(f"POST {url} failed: {e}") from e

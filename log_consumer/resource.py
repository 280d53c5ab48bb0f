"""Resolve the project and monitored resource that metrics are written for."""

import logging

import requests

from log_consumer.config import Config, ConfigError
from log_consumer.models import MonitoredResource

logger = logging.getLogger(__name__)

METADATA_URL = "http://metadata.google.internal/computeMetadata/v1/"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}
RESOURCE_TYPE = "gce_instance"


class MetadataClient:
    """Minimal reader for the GCE instance metadata server."""

    def __init__(self, base_url: str = METADATA_URL, session: requests.Session | None = None,
                 timeout: float = 2.0):
        self._base_url = base_url
        self._session = session or requests.Session()
        self._timeout = timeout

    def on_gce(self) -> bool:
        try:
            response = self._session.get(self._base_url, headers=METADATA_HEADERS,
                                         timeout=self._timeout)
        except requests.exceptions.RequestException:
            return False
        return response.headers.get("Metadata-Flavor") == "Google"

    def get(self, path: str) -> str:
        try:
            response = self._session.get(self._base_url + path, headers=METADATA_HEADERS,
                                         timeout=self._timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ConfigError(f"Could not retrieve {path} from metadata service: {e}") from e
        return response.text.strip()

    def project_id(self) -> str:
        return self.get("project/project-id")

    def instance_name(self) -> str:
        return self.get("instance/name")

    def zone(self) -> str:
        # Returned as projects/<number>/zones/<zone>
        return self.get("instance/zone").rsplit("/", 1)[-1]


def resolve_resource(config: Config, metadata: MetadataClient | None = None
                     ) -> tuple[str, MonitoredResource]:
    """Return (project_id, resource) from the metadata service or configured defaults."""
    if config.use_metadata_service:
        metadata = metadata or MetadataClient()
        if metadata.on_gce():
            project_id = metadata.project_id()
            labels = {"instance_id": metadata.instance_name(), "zone": metadata.zone()}
            logger.info("Using metadata service identity: project=%s, resource=%s",
                        project_id, labels)
            return project_id, MonitoredResource(type=RESOURCE_TYPE, labels=labels)
        logger.info("Metadata service not available, falling back to configured defaults")

    for name in ("default_project_id", "default_instance_name", "default_zone_name"):
        if not getattr(config, name):
            raise ConfigError(
                f"Metadata service is disabled or not available, but {name} is not set."
            )

    labels = {"instance_id": config.default_instance_name, "zone": config.default_zone_name}
    return config.default_project_id, MonitoredResource(type=RESOURCE_TYPE, labels=labels)

"""Configuration — frozen dataclass built from defaults, YAML, env vars and CLI args."""

import argparse
import logging
import os
import re
from dataclasses import dataclass, fields

import yaml

from log_consumer.sink import DEFAULT_ENDPOINT

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
SINKS = ("logging", "http")

_DURATION = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, None: 1.0}


class ConfigError(ValueError):
    """Configuration is missing a required value or holds an invalid one."""


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def parse_duration(value) -> float:
    """Parse ``30s``, ``1m``, ``500ms``, ``2h`` or bare seconds into seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    m = _DURATION.match(str(value))
    if m is None:
        raise ConfigError(f"invalid duration: {value!r}")
    return float(m.group(1)) * _UNIT_SECONDS[m.group(2)]


@dataclass(frozen=True)
class Config:
    access_log_path: str = ""
    log_polling_period: float = 30.0
    rotation_check_period: float = 60.0
    use_syslog: bool = False
    use_metadata_service: bool = True
    default_project_id: str = ""
    default_instance_name: str = ""
    default_zone_name: str = ""
    create_custom_metrics: bool = False
    sink: str = "logging"
    sink_endpoint: str = DEFAULT_ENDPOINT
    sink_token: str = ""
    log_level: str = "INFO"


_CONVERTERS = {
    "log_polling_period": parse_duration,
    "rotation_check_period": parse_duration,
    "use_syslog": _parse_bool,
    "use_metadata_service": _parse_bool,
    "create_custom_metrics": _parse_bool,
    "log_level": lambda v: str(v).strip().upper(),
}


def _convert(key: str, value):
    converter = _CONVERTERS.get(key, str)
    return converter(value)


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns empty dict if no path is given."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"config file {path} not found") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"config file {path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    logger.info("Loaded YAML config from %s", path)
    return data


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Export nginx access log status code counts as cumulative metrics",
    )
    parser.add_argument("--config", default=None,
                        help="Path to YAML config file (env: CONFIG_PATH)")
    parser.add_argument("--access-log-path", default=None,
                        help="Path to access log file.")
    parser.add_argument("--log-polling-period", default=None,
                        help="Period between checks for new log lines (default: 30s).")
    parser.add_argument("--rotation-check-period", default=None,
                        help="Minimum period between log rotation checks (default: 1m).")
    parser.add_argument("--use-syslog", action=argparse.BooleanOptionalAction, default=None,
                        help="Emit logs to syslog.")
    parser.add_argument("--use-metadata-service", action=argparse.BooleanOptionalAction,
                        default=None,
                        help="Use the GCE metadata service for project, instance and zone.")
    parser.add_argument("--default-project-id", default=None,
                        help="Project ID to use when the metadata service is unavailable.")
    parser.add_argument("--default-instance-name", default=None,
                        help="Instance name to use when the metadata service is unavailable.")
    parser.add_argument("--default-zone-name", default=None,
                        help="Zone name to use when the metadata service is unavailable.")
    parser.add_argument("--create-custom-metrics", action=argparse.BooleanOptionalAction,
                        default=None,
                        help="Create the custom metric before consuming logs.")
    parser.add_argument("--sink", choices=SINKS, default=None,
                        help="Where to write metrics (default: logging).")
    parser.add_argument("--sink-endpoint", default=None,
                        help=f"Monitoring API base URL for the http sink (default: {DEFAULT_ENDPOINT}).")
    parser.add_argument("--sink-token", default=None,
                        help="Static bearer token for the http sink; application default "
                             "credentials are used when unset (env: SINK_TOKEN).")
    parser.add_argument("--log-level", choices=LOG_LEVELS, default=None)
    return parser


def _validate(config: Config) -> Config:
    if not config.access_log_path:
        raise ConfigError("access_log_path is required")
    if config.log_polling_period <= 0:
        raise ConfigError("log_polling_period must be positive")
    if config.rotation_check_period < 0:
        raise ConfigError("rotation_check_period must not be negative")
    if config.sink not in SINKS:
        raise ConfigError(f"sink must be one of {SINKS}, got {config.sink!r}")
    if config.log_level not in LOG_LEVELS:
        raise ConfigError(f"log_level must be one of {LOG_LEVELS}, got {config.log_level!r}")
    return config


def load_config(argv: list[str] | None = None) -> Config:
    """Build Config from defaults <- YAML file <- env vars <- CLI args (highest priority)."""
    args = build_cli_parser().parse_args(argv)
    keys = [f.name for f in fields(Config)]

    values: dict = {}

    yaml_data = load_yaml_config(args.config or os.environ.get("CONFIG_PATH"))
    for key, value in yaml_data.items():
        key = str(key).replace("-", "_")
        if key not in keys:
            logger.warning("Ignoring unknown config key %r", key)
            continue
        if value is not None:
            values[key] = value

    for key in keys:
        env_value = os.environ.get(key.upper())
        if env_value is not None:
            values[key] = env_value

    for key in keys:
        cli_value = getattr(args, key)
        if cli_value is not None:
            values[key] = cli_value

    config = Config(**{k: _convert(k, v) for k, v in values.items()})
    return _validate(config)

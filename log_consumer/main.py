#!/usr/bin/env python3
"""nginx log consumer — entry point."""

import logging
import logging.handlers
import signal
import sys

from log_consumer.config import Config, ConfigError, load_config
from log_consumer.consumer import Consumer, ConsumerError
from log_consumer.counter import StatusCounter
from log_consumer.resource import resolve_resource
from log_consumer.sink import HttpMetricSink, LoggingMetricSink, SinkError
from log_consumer.tailer import FileTailer, TailerError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"
SYSLOG_IDENT = "nginx_log_consumer"


def configure_logging(config: Config):
    if config.use_syslog:
        handler = logging.handlers.SysLogHandler(address="/dev/log")
        handler.ident = f"{SYSLOG_IDENT}: "
        handler.setFormatter(logging.Formatter("%(name)s — %(message)s"))
        logging.basicConfig(level=config.log_level, handlers=[handler], force=True)
    else:
        logging.basicConfig(level=config.log_level, format=LOG_FORMAT,
                            stream=sys.stderr, force=True)


def build_sink(config: Config):
    if config.sink == "http":
        return HttpMetricSink(config.sink_endpoint, token=config.sink_token)
    return LoggingMetricSink()


def main(argv: list[str] | None = None) -> int:
    try:
        config = load_config(argv)
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, stream=sys.stderr)
        logger.error("Invalid configuration: %s", e)
        return 2

    configure_logging(config)

    try:
        tailer = FileTailer(config.access_log_path, config.rotation_check_period)
    except TailerError as e:
        logger.error("Could not create tailer for %s: %s", config.access_log_path, e)
        return 1

    with tailer:
        try:
            project_id, resource = resolve_resource(config)
        except ConfigError as e:
            logger.error("%s", e)
            return 1

        logger.info("Creating %s exporter for project %s; resource: %s",
                    config.sink, project_id, resource.labels)
        try:
            sink = build_sink(config)
        except SinkError as e:
            logger.error("Could not create %s sink: %s", config.sink, e)
            return 1
        counter = StatusCounter(sink, project_id, resource)

        if config.create_custom_metrics:
            try:
                counter.create_descriptor()
            except SinkError as e:
                logger.error("Failed to create custom metrics: %s", e)
                return 1

        consumer = Consumer(config.log_polling_period, tailer, counter)

        def signal_handler(signum, frame):
            logger.info("Received signal %d, shutting down...", signum)
            consumer.stop()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        logger.info("Starting consumer for %s", config.access_log_path)
        try:
            consumer.run()
        except ConsumerError as e:
            logger.error("Failure consuming logs: %s", e)
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

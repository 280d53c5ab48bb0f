"""Access log line parser for the JSON ``{"time": ..., "status": ...}`` format.

nginx is expected to emit one JSON object per line, e.g. with::

    log_format json escape=json '{"time": "$time_iso8601", "status": "$status"}';

Only the ``time`` and ``status`` fields are used; anything else is ignored.
"""

import json
import logging
import re
from datetime import datetime, timedelta, timezone

from log_consumer.models import LogRecord

logger = logging.getLogger(__name__)

# 2006-01-02T15:04:05-07:00, optionally with fractional seconds.
_ISO8601 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d{1,9}))?([+-])(\d{2}):(\d{2})$"
)


class ParseError(ValueError):
    """A log line or one of its fields could not be decoded."""


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp that carries a numeric UTC offset."""
    m = _ISO8601.match(value)
    if m is None:
        raise ParseError(f"timestamp {value!r} does not match YYYY-MM-DDTHH:MM:SS±HH:MM")

    year, month, day, hour, minute, second = (int(g) for g in m.group(1, 2, 3, 4, 5, 6))
    fraction = m.group(7) or ""
    microsecond = int(fraction[:6].ljust(6, "0")) if fraction else 0
    offset = timedelta(hours=int(m.group(9)), minutes=int(m.group(10)))
    if m.group(8) == "-":
        offset = -offset

    try:
        return datetime(year, month, day, hour, minute, second, microsecond,
                        tzinfo=timezone(offset))
    except ValueError as e:
        raise ParseError(f"timestamp {value!r}: {e}") from e


def _string_field(data: dict, name: str) -> str:
    """Look up *name*, falling back to a case-insensitive key match."""
    if name in data:
        value = data[name]
    else:
        matches = [v for k, v in data.items() if isinstance(k, str) and k.lower() == name]
        if not matches:
            raise ParseError(f"missing field {name!r}")
        value = matches[0]
    if not isinstance(value, str):
        raise ParseError(f"field {name!r} is {type(value).__name__}, expected string")
    return value


def parse_record(line: bytes | str) -> LogRecord:
    """Decode one log line. Raises ParseError if it is not a usable record."""
    try:
        data = json.loads(line)
    # ValueError covers JSONDecodeError, UnicodeDecodeError and the int digit limit.
    except (ValueError, RecursionError) as e:
        raise ParseError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseError(f"expected a JSON object, got {type(data).__name__}")

    timestamp = parse_timestamp(_string_field(data, "time"))
    return LogRecord(timestamp=timestamp, status=_string_field(data, "status"))


def parse_line(line: bytes | str) -> LogRecord | None:
    """Parse a line, returning None (and logging why) if it is malformed."""
    try:
        return parse_record(line)
    except ParseError as e:
        logger.warning("Error parsing log line: %s", e)
        return None

"""Classification of Heroku syslog lines into metric records.

A line is matched against an ordered table of rules. Each rule names the
substrings a line must contain and the extractor that builds the record.
The first matching rule wins. Extractors search each field independently
so a missing or reordered token only costs that one field.
"""

import logging
import math
import re
import time
from collections.abc import Callable
from datetime import UTC, datetime

from drainmetrics.core.models import MetricRecord, MetricType, PathClass

logger = logging.getLogger(__name__)

_DATE_PATTERN = re.compile(r"(\d{4}-\d{2}-\d{2}T\d{2}[\d:.+-]*) host")
_SERVICE_PATTERN = re.compile(r"service=(\d+)")
_STATUS_PATTERN = re.compile(r"status=(\d+)")
_SOURCE_PATTERN = re.compile(r"source=([\w.-]+)")
_MEMORY_TOTAL_PATTERN = re.compile(r"memory_total=(\d+)")
_MEMORY_QUOTA_PATTERN = re.compile(r"memory_quota=(\d+)")
_LOAD_PATTERN = re.compile(r"load-avg-15m=(\d+(?:\.\d+)?)")
_PATH_PATTERN = re.compile(r'path="([^"]*)"')

# Largest value a SQLite INTEGER column holds.
_SQLITE_INT_MAX = 2**63 - 1

_HOME_PATHS = frozenset({"", "/", "/ar", "/ar/"})

# (prefixes, class) pairs, checked in order after the home paths.
_PATH_PREFIXES: tuple[tuple[tuple[str, ...], PathClass], ...] = (
    (("/property/", "/ar/property/"), PathClass.PROPERTY),
    (("/to-rent/", "/for-sale/", "/ar/to-rent/", "/ar/for-sale/"), PathClass.SEARCH),
    (("/api/areaguide/",), PathClass.RESULTS),
    (("/api/listing/",), PathClass.VIEW),
)


def classify_path(path: str) -> PathClass:
    """Map a request path to its path class.

    Args:
        path: Request path as it appears in the router line.

    Returns:
        The first matching PathClass, PathClass.NONE when nothing matches.
    """
    if path in _HOME_PATHS:
        return PathClass.HOME
    for prefixes, path_class in _PATH_PREFIXES:
        if path.startswith(prefixes):
            return path_class
    return PathClass.NONE


def _search_int(pattern: re.Pattern[str], line: str) -> int:
    match = pattern.search(line)
    if not match:
        return 0
    try:
        value = int(match.group(1))
    except ValueError:
        return 0
    return value if value <= _SQLITE_INT_MAX else 0


def _search_float(pattern: re.Pattern[str], line: str) -> float:
    match = pattern.search(line)
    if not match:
        return 0.0
    value = float(match.group(1))
    return value if math.isfinite(value) else 0.0


def _search_str(pattern: re.Pattern[str], line: str) -> str:
    match = pattern.search(line)
    return match.group(1) if match else ""


def parse_date(line: str, now: float | None = None) -> float:
    """Extract the event timestamp that precedes the literal ``host``.

    Args:
        line: Raw syslog line.
        now: Fallback timestamp. Defaults to the current wall clock.

    Returns:
        Unix timestamp in seconds. Timestamps without an offset are UTC.
    """
    fallback = time.time() if now is None else now
    match = _DATE_PATTERN.search(line)
    if not match:
        return fallback
    try:
        parsed = datetime.fromisoformat(match.group(1))
    except ValueError:
        return fallback
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


def _path_class(line: str) -> PathClass:
    match = _PATH_PATTERN.search(line)
    if not match:
        return PathClass.NONE
    return classify_path(match.group(1))


def extract_router(line: str, now: float | None = None) -> MetricRecord:
    """Build a router record from a ``heroku router`` line."""
    return MetricRecord(
        type=MetricType.ROUTER,
        date=parse_date(line, now),
        path=_path_class(line),
        service=_search_int(_SERVICE_PATTERN, line),
        status=_search_int(_STATUS_PATTERN, line),
    )


def extract_web(line: str, now: float | None = None) -> MetricRecord:
    """Build a web record from a dyno memory sample line."""
    return MetricRecord(
        type=MetricType.WEB,
        date=parse_date(line, now),
        source=_search_str(_SOURCE_PATTERN, line),
        memory=_search_int(_MEMORY_TOTAL_PATTERN, line),
        memoryquota=_search_int(_MEMORY_QUOTA_PATTERN, line),
    )


def extract_postgres(line: str, now: float | None = None) -> MetricRecord:
    """Build a postgres record from a ``heroku-postgres`` sample line."""
    return MetricRecord(
        type=MetricType.POSTGRES,
        date=parse_date(line, now),
        source=_search_str(_SOURCE_PATTERN, line),
        load=_search_float(_LOAD_PATTERN, line),
    )


Extractor = Callable[[str, float | None], MetricRecord]

RULES: tuple[tuple[tuple[str, ...], Extractor], ...] = (
    (("heroku router", "service=", "status="), extract_router),
    (("heroku web", "source=", "memory_total="), extract_web),
    (("heroku-postgres", "source=", "load-avg-15m="), extract_postgres),
)


def classify(line: str, now: float | None = None) -> MetricRecord | None:
    """Classify a syslog line and extract its metric record.

    Args:
        line: Raw syslog line.
        now: Timestamp used when the line carries no parseable date.

    Returns:
        The extracted MetricRecord, or None when no rule matches.
    """
    for required, extractor in RULES:
        if all(token in line for token in required):
            return extractor(line, now)
    logger.debug("Dropping unrecognised log line: %.120s", line)
    return None

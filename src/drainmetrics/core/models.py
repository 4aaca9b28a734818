"""Core domain models for drain metrics."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class MetricType(StrEnum):
    """Log shape a metric record was extracted from."""

    ROUTER = "router"
    WEB = "web"
    POSTGRES = "postgres"


class PathClass(StrEnum):
    """Coarse feature area of a routed request path."""

    HOME = "home"
    SEARCH = "search"
    PROPERTY = "property"
    RESULTS = "results"
    VIEW = "view"
    NONE = "none"


# Every class except NONE; used when a router query has no path filter.
KNOWN_PATH_CLASSES: tuple[PathClass, ...] = (
    PathClass.HOME,
    PathClass.SEARCH,
    PathClass.PROPERTY,
    PathClass.RESULTS,
    PathClass.VIEW,
)


@dataclass(frozen=True)
class MetricRecord:
    """A single metric extracted from a Heroku log line.

    All three log shapes share one wide record. Fields that do not apply
    to a shape keep their neutral default and are never None.

    Attributes:
        type: Log shape that produced the record.
        date: Unix timestamp of the event, in seconds.
        path: Path class of a router request.
        service: Router service time in milliseconds.
        status: Router HTTP status code.
        source: Dyno or database source name (web, postgres).
        memory: Total dyno memory in MB (web).
        memoryquota: Dyno memory quota in MB (web).
        load: Fifteen minute load average (postgres).
    """

    type: MetricType
    date: float
    path: PathClass = PathClass.NONE
    service: int = 0
    status: int = 0
    source: str = ""
    memory: int = 0
    memoryquota: int = 0
    load: float = 0.0


class Statistic(StrEnum):
    """Per-bucket aggregate computed by a bucketed query."""

    COUNT = "count"
    MAX = "max"
    AVG = "avg"


# Record attributes a bucketed query may aggregate over.
AGGREGATABLE_COLUMNS = frozenset({"service", "status", "memory", "memoryquota", "load"})


@dataclass(frozen=True)
class BucketQuery:
    """Description of a gap-filled, time-bucketed series.

    Attributes:
        type: Metric type to select.
        paths: Path classes to select, or None for no path filter.
        statistic: Aggregate computed per bucket besides the count.
        column: Record attribute the statistic is computed over.
        width_seconds: Width of a full bucket.
        bucket_count: Total number of buckets, partial one included.
        rate: Report count per second instead of the statistic.
        include_partial: Keep the still-filling most recent bucket.
    """

    type: MetricType
    paths: tuple[PathClass, ...] | None
    statistic: Statistic
    column: str = "service"
    width_seconds: int = 10
    bucket_count: int = 360
    rate: bool = False
    include_partial: bool = True

    def __post_init__(self) -> None:
        if self.column not in AGGREGATABLE_COLUMNS:
            raise ValueError(f"Cannot aggregate over column {self.column!r}")
        if self.width_seconds <= 0:
            raise ValueError("width_seconds must be positive")
        if self.bucket_count <= 0:
            raise ValueError("bucket_count must be positive")


@dataclass(frozen=True)
class BucketRow:
    """Aggregated values for one bucket interval.

    Attributes:
        start_time: Inclusive start of the bucket (unix seconds).
        end_time: Exclusive end of the bucket (unix seconds).
        count: Number of matching records.
        value: Statistic over matching records, None when the bucket is empty.
    """

    start_time: float
    end_time: float
    count: int
    value: float | None = None


@dataclass(frozen=True)
class Series:
    """Current value plus the historical series, oldest first."""

    value: float
    series: list[float] = field(default_factory=list)

    def to_item(self) -> dict[str, Any]:
        """Return the dashboard response body."""
        return {"item": [{"value": self.value}, list(self.series)]}

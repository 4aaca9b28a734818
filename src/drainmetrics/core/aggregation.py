"""Time-bucketed aggregation of stored metric records.

Buckets are anchored on "now" floored to a multiple of the bucket width.
The most recent bucket runs from the anchor to "now" so in-flight data is
always included; the older buckets are full width and walk backwards from
the anchor. Every bucket is reported, empty ones included.
"""

import time

from drainmetrics.core.models import (
    KNOWN_PATH_CLASSES,
    BucketQuery,
    BucketRow,
    MetricType,
    PathClass,
    Series,
    Statistic,
)
from drainmetrics.core.ports import MetricsStoragePort


def bucket_anchor(now: float, width_seconds: int) -> float:
    """Floor a timestamp to the nearest multiple of the bucket width."""
    return now - (now % width_seconds)


def plan_buckets(
    now: float, width_seconds: int, bucket_count: int
) -> list[tuple[float, float]]:
    """Compute bucket intervals covering the lookback window.

    Args:
        now: Current time, the end of the partial bucket.
        width_seconds: Width of a full bucket.
        bucket_count: Total number of buckets, partial one included.

    Returns:
        ``(start_time, end_time)`` pairs ascending by start_time. The last
        pair is the partial bucket ``(anchor, now)``.
    """
    anchor = bucket_anchor(now, width_seconds)
    buckets: list[tuple[float, float]] = []
    for i in range(bucket_count - 1, 0, -1):
        buckets.append((anchor - i * width_seconds, anchor - (i - 1) * width_seconds))
    buckets.append((anchor, now))
    return buckets


def to_series(query: BucketQuery, rows: list[BucketRow]) -> Series:
    """Reshape bucket rows into a dashboard series.

    Empty buckets report 0. Rate queries report count per second. When the
    query excludes the partial bucket, the last row is dropped. The current
    value is the last element of the series, or 0 for an empty series.
    """
    if not query.include_partial:
        rows = rows[:-1]
    if query.rate:
        values = [row.count / query.width_seconds for row in rows]
    elif query.statistic is Statistic.COUNT:
        values = [float(row.count) for row in rows]
    else:
        values = [row.value if row.value is not None else 0 for row in rows]
    return Series(value=values[-1] if values else 0, series=values)


class Aggregator:
    """Runs bucketed queries against a store and reshapes the result."""

    def __init__(self, storage: MetricsStoragePort) -> None:
        self._storage = storage

    async def series(self, query: BucketQuery, now: float | None = None) -> Series:
        """Return the gap-filled series for a query.

        Args:
            query: Bucketed query to run.
            now: Reference time. Defaults to the current wall clock.

        Raises:
            StorageError: The store could not run the query.
        """
        if now is None:
            now = time.time()
        rows = await self._storage.aggregate(query, now)
        return to_series(query, rows)


def _service(path: PathClass) -> BucketQuery:
    return BucketQuery(
        type=MetricType.ROUTER,
        paths=(path,),
        statistic=Statistic.MAX,
        column="service",
        width_seconds=10,
        bucket_count=360,
    )


def _throughput(paths: tuple[PathClass, ...]) -> BucketQuery:
    return BucketQuery(
        type=MetricType.ROUTER,
        paths=paths,
        statistic=Statistic.COUNT,
        width_seconds=10,
        bucket_count=360,
        rate=True,
        include_partial=False,
    )


SERVICE_PATHS: tuple[PathClass, ...] = (
    PathClass.HOME,
    PathClass.SEARCH,
    PathClass.PROPERTY,
)

DASHBOARD_QUERIES: dict[str, BucketQuery] = {
    "service/home": _service(PathClass.HOME),
    "service/search": _service(PathClass.SEARCH),
    "service/property": _service(PathClass.PROPERTY),
    "throughput": _throughput(KNOWN_PATH_CLASSES),
    "throughput/frontend": _throughput(SERVICE_PATHS),
    "throughput/results": _throughput((PathClass.RESULTS,)),
    "throughput/view": _throughput((PathClass.VIEW,)),
    "memory": BucketQuery(
        type=MetricType.WEB,
        paths=None,
        statistic=Statistic.AVG,
        column="memory",
        width_seconds=600,
        bucket_count=12,
    ),
}

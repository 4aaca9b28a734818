"""In-memory storage adapter for drain metrics."""

from collections.abc import AsyncIterable, Sequence

from drainmetrics.core.aggregation import plan_buckets
from drainmetrics.core.models import BucketQuery, BucketRow, MetricRecord, Statistic
from drainmetrics.core.ports import StorageError


class InMemoryMetricsStorage:
    """In-memory implementation of MetricsStoragePort.

    Stores records in a list. Suitable for testing and local runs where
    persistence is not required. Setting ``fail_with`` makes every
    operation raise it wrapped in StorageError.
    """

    def __init__(self) -> None:
        self._records: list[MetricRecord] = []
        self.fail_with: Exception | None = None

    def _check(self, operation: str) -> None:
        if self.fail_with is not None:
            raise StorageError(str(self.fail_with), query=operation) from self.fail_with

    async def write_many(self, records: Sequence[MetricRecord]) -> int:
        """Append a batch of records."""
        self._check("write_many")
        self._records.extend(records)
        return len(records)

    async def delete_before(self, timestamp: float) -> int:
        """Delete records with date < timestamp."""
        self._check("delete_before")
        kept = [r for r in self._records if r.date >= timestamp]
        deleted = len(self._records) - len(kept)
        self._records = kept
        return deleted

    async def aggregate(self, query: BucketQuery, now: float) -> list[BucketRow]:
        """Run a gap-filled bucketed query, oldest bucket first."""
        self._check("aggregate")
        selected = [
            r
            for r in self._records
            if r.type == query.type and (query.paths is None or r.path in query.paths)
        ]
        rows = []
        for start, end in plan_buckets(now, query.width_seconds, query.bucket_count):
            values = [
                getattr(r, query.column) for r in selected if start <= r.date < end
            ]
            value: float | None = None
            if values and query.statistic is Statistic.MAX:
                value = max(values)
            elif values and query.statistic is Statistic.AVG:
                value = sum(values) / len(values)
            rows.append(
                BucketRow(start_time=start, end_time=end, count=len(values), value=value)
            )
        return rows

    async def read(self, since: float = 0) -> AsyncIterable[MetricRecord]:
        """Read records since the given timestamp.

        Returns records with date > since, ordered by date ascending.
        """
        self._check("read")
        filtered = [r for r in self._records if r.date > since]
        for record in sorted(filtered, key=lambda r: r.date):
            yield record

    async def count(self) -> int:
        """Return total number of records in storage."""
        self._check("count")
        return len(self._records)

    async def close(self) -> None:
        """Nothing to release."""

"""Port interfaces for metric storage adapters.

The core depends only on these interfaces, not on concrete stores.
"""

from collections.abc import AsyncIterable, Sequence
from typing import Protocol, runtime_checkable

from drainmetrics.core.models import BucketQuery, BucketRow, MetricRecord


class StorageError(Exception):
    """A storage operation failed.

    Attributes:
        query: The statement that failed, for diagnostics.
    """

    def __init__(self, message: str, query: str = "") -> None:
        super().__init__(message)
        self.query = query


@runtime_checkable
class MetricsStoragePort(Protocol):
    """Port for metric record storage.

    Examples: SQLiteMetricsStorage, InMemoryMetricsStorage.
    """

    async def write_many(self, records: Sequence[MetricRecord]) -> int:
        """Persist a batch of records as one bulk write.

        Returns:
            Number of rows written.
        """
        ...

    async def delete_before(self, timestamp: float) -> int:
        """Delete records with date < timestamp.

        Returns:
            Number of rows deleted.
        """
        ...

    async def aggregate(self, query: BucketQuery, now: float) -> list[BucketRow]:
        """Run a gap-filled bucketed query.

        Args:
            query: What to select and how to bucket it.
            now: End of the most recent (partial) bucket.

        Returns:
            Exactly query.bucket_count rows, ascending by start_time.
        """
        ...

    def read(self, since: float = 0) -> AsyncIterable[MetricRecord]:
        """Read records with date > since, ordered by date ascending."""
        ...

    async def count(self) -> int:
        """Return the number of stored records."""
        ...

    async def close(self) -> None:
        """Release any held connections."""
        ...

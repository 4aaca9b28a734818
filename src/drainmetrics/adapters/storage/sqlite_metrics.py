"""SQLite storage adapter for drain metrics."""

from collections.abc import AsyncIterable, AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite

from drainmetrics.adapters.storage.sqlite_base import AsyncConnectionManager
from drainmetrics.core.aggregation import bucket_anchor
from drainmetrics.core.models import (
    BucketQuery,
    BucketRow,
    MetricRecord,
    MetricType,
    PathClass,
    Statistic,
)
from drainmetrics.core.ports import StorageError

_METRICS_SCHEMA = """
CREATE TABLE IF NOT EXISTS metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    type TEXT NOT NULL,
    date REAL NOT NULL,
    source TEXT NOT NULL DEFAULT '',
    status INTEGER NOT NULL DEFAULT 0,
    service INTEGER NOT NULL DEFAULT 0,
    memory INTEGER NOT NULL DEFAULT 0,
    memoryquota INTEGER NOT NULL DEFAULT 0,
    load REAL NOT NULL DEFAULT 0,
    path TEXT NOT NULL DEFAULT 'none'
);
CREATE INDEX IF NOT EXISTS idx_metrics_date ON metrics(date);
CREATE INDEX IF NOT EXISTS idx_metrics_type_date ON metrics(type, date);
"""

_INSERT_METRIC = """
INSERT INTO metrics (type, date, source, status, service, memory, memoryquota, load, path)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_SELECT_METRICS_SINCE = """
SELECT type, date, source, status, service, memory, memoryquota, load, path
FROM metrics
WHERE date > ?
ORDER BY date ASC
"""

_COUNT_METRICS = """
SELECT COUNT(*) FROM metrics
"""

_DELETE_METRICS_BEFORE = """
DELETE FROM metrics WHERE date < ?
"""

# Bucket 0 is the partial bucket [anchor, now); bucket i >= 1 is the full
# bucket ending where bucket i - 1 starts.
_BUCKETED_QUERY = """
WITH RECURSIVE buckets(i, start_time, end_time) AS (
    SELECT 0, :anchor, :now
    UNION ALL
    SELECT i + 1, :anchor - (i + 1) * :width, :anchor - i * :width
    FROM buckets
    WHERE i + 1 < :bucket_count
)
SELECT
    buckets.start_time,
    buckets.end_time,
    COUNT(metrics.id),
    {statistic}
FROM buckets
LEFT JOIN metrics
    ON metrics.date >= buckets.start_time
    AND metrics.date < buckets.end_time
    AND metrics.type = :type{path_condition}
GROUP BY buckets.i
ORDER BY buckets.start_time ASC
"""

_STATISTIC_SQL = {
    Statistic.COUNT: "NULL",
    Statistic.MAX: "MAX(metrics.{column})",
    Statistic.AVG: "AVG(metrics.{column})",
}


def _to_row(record: MetricRecord) -> tuple[Any, ...]:
    return (
        record.type.value,
        record.date,
        record.source,
        record.status,
        record.service,
        record.memory,
        record.memoryquota,
        record.load,
        record.path.value,
    )


def _from_row(row: Any) -> MetricRecord:
    return MetricRecord(
        type=MetricType(row[0]),
        date=row[1],
        source=row[2],
        status=row[3],
        service=row[4],
        memory=row[5],
        memoryquota=row[6],
        load=row[7],
        path=PathClass(row[8]),
    )


def build_bucketed_query(
    query: BucketQuery, now: float
) -> tuple[str, dict[str, Any]]:
    """Build the SQL and bind parameters for a bucketed query.

    The statistic and column come from closed sets validated on
    BucketQuery; every value is passed as a named bind parameter.

    Returns:
        Tuple of (sql, parameters).
    """
    params: dict[str, Any] = {
        "anchor": bucket_anchor(now, query.width_seconds),
        "now": now,
        "width": query.width_seconds,
        "bucket_count": query.bucket_count,
        "type": query.type.value,
    }
    path_condition = ""
    if query.paths is not None:
        names = []
        for index, path in enumerate(query.paths):
            name = f"path{index}"
            params[name] = path.value
            names.append(f":{name}")
        path_condition = f"\n    AND metrics.path IN ({', '.join(names)})"
    statistic = _STATISTIC_SQL[query.statistic].format(column=query.column)
    sql = _BUCKETED_QUERY.format(statistic=statistic, path_condition=path_condition)
    return sql, params


class SQLiteMetricsStorage:
    """SQLite implementation of MetricsStoragePort.

    Stores every metric shape in one wide ``metrics`` table using aiosqlite
    for non-blocking access. Uses WAL mode for file databases so the
    committer and the query endpoints do not block each other.

    Every aiosqlite error, and every value the driver cannot bind, is
    re-raised as StorageError carrying the offending statement.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._manager = AsyncConnectionManager(db_path, _METRICS_SCHEMA)

    @asynccontextmanager
    async def _connection(
        self, sql: str, transactional: bool = False
    ) -> AsyncIterator[aiosqlite.Connection]:
        scope = self._manager.transaction if transactional else self._manager.connection
        try:
            async with scope() as db:
                yield db
        except (aiosqlite.Error, OverflowError, ValueError) as exc:
            raise StorageError(str(exc), query=sql) from exc

    async def write_many(self, records: Sequence[MetricRecord]) -> int:
        """Insert a batch of records in a single transaction."""
        if not records:
            return 0
        async with self._connection(_INSERT_METRIC, transactional=True) as db:
            await db.executemany(_INSERT_METRIC, [_to_row(r) for r in records])
        return len(records)

    async def delete_before(self, timestamp: float) -> int:
        """Delete records with date < timestamp."""
        async with self._connection(_DELETE_METRICS_BEFORE, transactional=True) as db:
            cursor = await db.execute(_DELETE_METRICS_BEFORE, (timestamp,))
            return cursor.rowcount

    async def aggregate(self, query: BucketQuery, now: float) -> list[BucketRow]:
        """Run a gap-filled bucketed query, oldest bucket first."""
        sql, params = build_bucketed_query(query, now)
        async with self._connection(sql) as db:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        return [
            BucketRow(start_time=row[0], end_time=row[1], count=row[2], value=row[3])
            for row in rows
        ]

    async def read(self, since: float = 0) -> AsyncIterable[MetricRecord]:
        """Read records since the given timestamp.

        Returns records with date > since, ordered by date ascending.
        """
        async with self._connection(_SELECT_METRICS_SINCE) as db:
            async with db.execute(_SELECT_METRICS_SINCE, (since,)) as cursor:
                async for row in cursor:
                    yield _from_row(row)

    async def count(self) -> int:
        """Return total number of records in storage."""
        async with self._connection(_COUNT_METRICS) as db:
            async with db.execute(_COUNT_METRICS) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        await self._manager.close()

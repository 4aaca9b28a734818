"""Storage adapters implementing core ports."""

from drainmetrics.adapters.storage.in_memory import InMemoryMetricsStorage
from drainmetrics.adapters.storage.sqlite_metrics import SQLiteMetricsStorage

__all__ = [
    "InMemoryMetricsStorage",
    "SQLiteMetricsStorage",
]

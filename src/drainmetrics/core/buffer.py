"""In-process buffer holding metric records between commit cycles."""

import threading
from collections.abc import Iterable

from drainmetrics.core.models import MetricRecord


class MetricBuffer:
    """Append-only queue of records waiting for the next batch commit.

    The buffer is owned by one application instance. Appends may come from
    the event loop or from worker threads, so the list is guarded by a lock
    and drained by swapping it for a fresh one.
    """

    def __init__(self) -> None:
        self._records: list[MetricRecord] = []
        self._lock = threading.Lock()

    def append(self, record: MetricRecord) -> None:
        """Queue a single record."""
        with self._lock:
            self._records.append(record)

    def extend(self, records: Iterable[MetricRecord]) -> None:
        """Queue several records at once."""
        batch = list(records)
        with self._lock:
            self._records.extend(batch)

    def drain(self) -> list[MetricRecord]:
        """Take every queued record, leaving the buffer empty.

        Returns:
            The records queued before the swap. Records appended afterwards
            stay in the buffer for the next drain.
        """
        with self._lock:
            drained, self._records = self._records, []
        return drained

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

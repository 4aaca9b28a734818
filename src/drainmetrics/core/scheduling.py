"""Background tasks that flush and expire metric records.

Each task runs as its own asyncio task and contains its own failures: an
error in one cycle is logged and the loop carries on with the next one.
"""

import asyncio
import contextlib
import logging
import time

from drainmetrics.core.buffer import MetricBuffer
from drainmetrics.core.ports import MetricsStoragePort

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs ``run_once`` every ``interval`` seconds on the event loop."""

    def __init__(self, interval: float, run_at_start: bool = False) -> None:
        self.interval = interval
        self.run_at_start = run_at_start
        self._task: asyncio.Task[None] | None = None

    async def run_once(self) -> int:
        """Perform one cycle and return the number of records it handled.

        Must be overridden by subclasses.
        """
        raise NotImplementedError

    async def _loop(self) -> None:
        if self.run_at_start:
            await self.run_once()
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=type(self).__name__)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None


class BatchCommitter(PeriodicTask):
    """Drains the buffer and persists its contents as one bulk insert.

    A failed batch is logged and discarded. Metrics are best-effort
    telemetry, so nothing is retried or put back into the buffer.
    """

    def __init__(
        self,
        buffer: MetricBuffer,
        storage: MetricsStoragePort,
        interval: float = 1.0,
    ) -> None:
        super().__init__(interval)
        self._buffer = buffer
        self._storage = storage

    async def commit_once(self) -> int:
        """Commit everything currently buffered.

        Returns:
            Number of rows persisted, 0 when the buffer was empty or the
            write failed.
        """
        batch = self._buffer.drain()
        if not batch:
            return 0
        try:
            return await self._storage.write_many(batch)
        except Exception:
            logger.exception("Failed to commit %d metrics, batch discarded", len(batch))
            return 0

    async def run_once(self) -> int:
        return await self.commit_once()

    async def stop(self) -> None:
        """Stop the loop and flush whatever is still buffered."""
        await super().stop()
        await self.commit_once()


class RetentionSweeper(PeriodicTask):
    """Deletes records older than the retention horizon.

    Runs once at start and then every ``interval`` seconds. Deletion is
    idempotent, so a failed sweep is simply picked up by the next one.
    """

    def __init__(
        self,
        storage: MetricsStoragePort,
        max_age_seconds: float = 3600,
        interval: float = 1200,
    ) -> None:
        super().__init__(interval, run_at_start=True)
        self._storage = storage
        self.max_age_seconds = max_age_seconds

    async def sweep_once(self, now: float | None = None) -> int:
        """Delete every record older than ``max_age_seconds``.

        Args:
            now: Reference time. Defaults to the current wall clock.

        Returns:
            Number of rows deleted, 0 on failure.
        """
        if now is None:
            now = time.time()
        try:
            deleted = await self._storage.delete_before(now - self.max_age_seconds)
        except Exception:
            logger.exception("Failed to delete old metrics")
            return 0
        logger.info("%d old metrics deleted.", deleted)
        return deleted

    async def run_once(self) -> int:
        return await self.sweep_once()

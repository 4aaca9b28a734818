"""Application factory wiring storage, buffer, timers and endpoints."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from drainmetrics.adapters.frameworks.fastapi import create_drain_router
from drainmetrics.adapters.storage.sqlite_metrics import SQLiteMetricsStorage
from drainmetrics.config import Settings
from drainmetrics.core.aggregation import Aggregator
from drainmetrics.core.buffer import MetricBuffer
from drainmetrics.core.ports import MetricsStoragePort
from drainmetrics.core.scheduling import BatchCommitter, RetentionSweeper

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings,
    storage: MetricsStoragePort | None = None,
) -> FastAPI:
    """Create the drain receiver application.

    Args:
        settings: Runtime settings.
        storage: Metrics store. Defaults to SQLite at settings.database_path.

    Returns:
        FastAPI app whose lifespan runs the committer and the sweeper.
    """
    store = storage if storage is not None else SQLiteMetricsStorage(settings.database_path)
    buffer = MetricBuffer()
    aggregator = Aggregator(store)
    committer = BatchCommitter(buffer, store, interval=settings.commit_interval)
    sweeper = RetentionSweeper(
        store,
        max_age_seconds=settings.retention_seconds,
        interval=settings.sweep_interval,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        """Start the background tasks on startup, flush on shutdown."""
        await committer.start()
        await sweeper.start()
        logger.info("listening on port %d", settings.port)
        try:
            yield
        finally:
            await sweeper.stop()
            await committer.stop()
            await store.close()

    app = FastAPI(title="drainmetrics", lifespan=lifespan)
    app.include_router(create_drain_router(settings.token, buffer, aggregator))
    app.state.storage = store
    app.state.buffer = buffer
    app.state.aggregator = aggregator
    app.state.committer = committer
    app.state.sweeper = sweeper
    return app

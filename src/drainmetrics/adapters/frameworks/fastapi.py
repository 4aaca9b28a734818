"""FastAPI adapter for the drain and dashboard endpoints."""

import logging
import secrets

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from drainmetrics.core.aggregation import DASHBOARD_QUERIES, Aggregator
from drainmetrics.core.buffer import MetricBuffer
from drainmetrics.core.classifier import classify
from drainmetrics.core.logplex import is_logplex, split_lines
from drainmetrics.core.ports import StorageError

logger = logging.getLogger(__name__)


def ingest_body(buffer: MetricBuffer, body: str | None) -> int:
    """Classify every line of a drain body and queue the resulting records.

    Args:
        buffer: Buffer receiving the records.
        body: Decoded logplex body, None when no body was read.

    Returns:
        Number of records queued.
    """
    if not body:
        logger.error("No log line parsed.")
        return 0
    records = [r for r in map(classify, split_lines(body)) if r is not None]
    buffer.extend(records)
    return len(records)


def create_drain_router(
    token: str,
    buffer: MetricBuffer,
    aggregator: Aggregator,
) -> APIRouter:
    """Create a FastAPI router with the drain and dashboard endpoints.

    Every endpoint except /health carries the shared secret as its last
    path segment; any other value answers 404.

    Args:
        token: Shared secret path segment.
        buffer: Buffer receiving ingested records.
        aggregator: Aggregator answering the dashboard queries.

    Returns:
        APIRouter with all endpoints configured.
    """
    router = APIRouter()

    def check_token(candidate: str) -> None:
        if not secrets.compare_digest(candidate.encode(), token.encode()):
            raise HTTPException(status_code=404)

    async def respond(name: str) -> Response:
        try:
            series = await aggregator.series(DASHBOARD_QUERIES[name])
        except StorageError as exc:
            logger.exception("error querying %s: %s", name, exc.query)
            return Response(status_code=500)
        return JSONResponse(content=series.to_item())

    @router.post("/drain/{candidate}")
    async def drain(
        candidate: str, request: Request, background_tasks: BackgroundTasks
    ) -> Response:
        """Accept a logplex batch and process it after responding."""
        check_token(candidate)
        body = None
        if is_logplex(request.headers.get("content-type")):
            raw = await request.body()
            body = raw.decode("utf-8", errors="replace")
        background_tasks.add_task(ingest_body, buffer, body)
        return Response(status_code=200)

    @router.get("/service/{path_class}/{candidate}")
    async def service(path_class: str, candidate: str) -> Response:
        """Max service time per 10 s bucket for one path class."""
        check_token(candidate)
        name = f"service/{path_class}"
        if name not in DASHBOARD_QUERIES:
            raise HTTPException(status_code=404)
        return await respond(name)

    @router.get("/throughput/{candidate}")
    async def throughput(candidate: str) -> Response:
        """Requests per second over every known path class."""
        check_token(candidate)
        return await respond("throughput")

    @router.get("/throughput/{scope}/{candidate}")
    async def throughput_scope(scope: str, candidate: str) -> Response:
        """Requests per second for the frontend, results or view pages."""
        check_token(candidate)
        name = f"throughput/{scope}"
        if name not in DASHBOARD_QUERIES:
            raise HTTPException(status_code=404)
        return await respond(name)

    @router.get("/memory/{candidate}")
    async def memory(candidate: str) -> Response:
        """Average dyno memory per 10 minute bucket over two hours."""
        check_token(candidate)
        return await respond("memory")

    @router.get("/health")
    async def health() -> dict[str, str | int]:
        return {"status": "ok", "buffered": len(buffer)}

    return router

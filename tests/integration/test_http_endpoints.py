"""Integration tests for the drain and dashboard endpoints."""

import logging
import time

import pytest

from drainmetrics.adapters.storage.in_memory import InMemoryMetricsStorage
from drainmetrics.app import create_app
from drainmetrics.config import Settings
from drainmetrics.core.models import MetricRecord, MetricType, PathClass
from tests.conftest import TOKEN
from tests.samples import NOW, POSTGRES_LINE, ROUTER_LINE, WEB_LINE, router_line

pytestmark = [pytest.mark.asgi, pytest.mark.tier(2)]

LOGPLEX = {"content-type": "application/logplex-1"}


@pytest.fixture
def frozen_now(monkeypatch: pytest.MonkeyPatch) -> float:
    monkeypatch.setattr(time, "time", lambda: NOW)
    return NOW


class TestDrainEndpoint:
    async def test_accepts_logplex_body(self, client, app_with_storage) -> None:
        response = await client.post(f"/drain/{TOKEN}", content=ROUTER_LINE, headers=LOGPLEX)

        assert response.status_code == 200
        assert response.content == b""
        records = app_with_storage.state.buffer.drain()
        assert len(records) == 1
        assert records[0].type is MetricType.ROUTER
        assert (records[0].service, records[0].status) == (129, 200)

    async def test_batch_body_yields_one_record_per_metric_line(
        self, client, app_with_storage
    ) -> None:
        body = "\n".join([ROUTER_LINE, "app web.1 - Started GET /", WEB_LINE, POSTGRES_LINE])

        await client.post(f"/drain/{TOKEN}", content=body, headers=LOGPLEX)

        records = app_with_storage.state.buffer.drain()
        assert [r.type for r in records] == [
            MetricType.ROUTER,
            MetricType.WEB,
            MetricType.POSTGRES,
        ]

    async def test_oversized_field_does_not_lose_the_body(
        self, client, app_with_storage
    ) -> None:
        huge = router_line("/").replace("service=50", "service=" + "9" * 5000)
        body = "\n".join([huge, WEB_LINE])

        response = await client.post(f"/drain/{TOKEN}", content=body, headers=LOGPLEX)

        assert response.status_code == 200
        records = app_with_storage.state.buffer.drain()
        assert [r.type for r in records] == [MetricType.ROUTER, MetricType.WEB]
        assert records[0].service == 0

    async def test_wrong_token_is_not_found(self, client, app_with_storage) -> None:
        response = await client.post("/drain/nope", content=ROUTER_LINE, headers=LOGPLEX)

        assert response.status_code == 404
        assert len(app_with_storage.state.buffer) == 0

    async def test_other_content_type_is_ignored(
        self, client, app_with_storage, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.ERROR):
            response = await client.post(
                f"/drain/{TOKEN}",
                content=ROUTER_LINE,
                headers={"content-type": "text/plain"},
            )

        assert response.status_code == 200
        assert len(app_with_storage.state.buffer) == 0
        assert "No log line parsed." in caplog.text

    async def test_empty_body_still_answers_200(
        self, client, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.ERROR):
            response = await client.post(f"/drain/{TOKEN}", content=b"", headers=LOGPLEX)

        assert response.status_code == 200
        assert "No log line parsed." in caplog.text

    async def test_unrecognised_lines_answer_200(self, client, app_with_storage) -> None:
        response = await client.post(f"/drain/{TOKEN}", content="garbage", headers=LOGPLEX)

        assert response.status_code == 200
        assert len(app_with_storage.state.buffer) == 0

    async def test_ingested_records_are_visible_after_commit(
        self, client, app_with_storage, memory_storage: InMemoryMetricsStorage
    ) -> None:
        await client.post(f"/drain/{TOKEN}", content=WEB_LINE, headers=LOGPLEX)
        assert await memory_storage.count() == 0

        await app_with_storage.state.committer.commit_once()

        assert await memory_storage.count() == 1


class TestServiceEndpoint:
    async def test_returns_max_service_series(
        self, client, memory_storage: InMemoryMetricsStorage, frozen_now: float
    ) -> None:
        await memory_storage.write_many(
            [
                MetricRecord(type=MetricType.ROUTER, date=frozen_now - 3, service=100, path=PathClass.HOME),
                MetricRecord(type=MetricType.ROUTER, date=frozen_now - 2, service=250, path=PathClass.HOME),
            ]
        )

        response = await client.get(f"/service/home/{TOKEN}")

        assert response.status_code == 200
        body = response.json()
        value, series = body["item"]
        assert value == {"value": 250}
        assert len(series) == 360
        assert series[-1] == 250
        assert series[:-1] == [0] * 359

    @pytest.mark.parametrize("path_class", ["home", "search", "property"])
    async def test_empty_store_returns_zeros(
        self, client, path_class: str, frozen_now: float
    ) -> None:
        response = await client.get(f"/service/{path_class}/{TOKEN}")

        assert response.json() == {"item": [{"value": 0}, [0] * 360]}

    async def test_unknown_path_class_is_not_found(self, client) -> None:
        response = await client.get(f"/service/view/{TOKEN}")

        assert response.status_code == 404

    async def test_wrong_token_is_not_found(self, client) -> None:
        response = await client.get("/service/home/nope")

        assert response.status_code == 404


class TestThroughputEndpoints:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("/throughput/{token}", 0.3),
            ("/throughput/frontend/{token}", 0.2),
            ("/throughput/results/{token}", 0.0),
            ("/throughput/view/{token}", 0.1),
        ],
    )
    async def test_rate_over_last_complete_bucket(
        self,
        client,
        memory_storage: InMemoryMetricsStorage,
        frozen_now: float,
        url: str,
        expected: float,
    ) -> None:
        await memory_storage.write_many(
            [
                MetricRecord(type=MetricType.ROUTER, date=frozen_now - 15, path=PathClass.HOME),
                MetricRecord(type=MetricType.ROUTER, date=frozen_now - 14, path=PathClass.SEARCH),
                MetricRecord(type=MetricType.ROUTER, date=frozen_now - 13, path=PathClass.VIEW),
                MetricRecord(type=MetricType.ROUTER, date=frozen_now - 12, path=PathClass.NONE),
                MetricRecord(type=MetricType.ROUTER, date=frozen_now - 1, path=PathClass.HOME),
            ]
        )

        response = await client.get(url.format(token=TOKEN))

        assert response.status_code == 200
        value, series = response.json()["item"]
        assert len(series) == 359
        assert value["value"] == pytest.approx(expected)
        assert series[-1] == pytest.approx(expected)

    async def test_unknown_scope_is_not_found(self, client) -> None:
        response = await client.get(f"/throughput/admin/{TOKEN}")

        assert response.status_code == 404


class TestMemoryEndpoint:
    async def test_average_in_latest_bucket_only(
        self, client, memory_storage: InMemoryMetricsStorage, frozen_now: float
    ) -> None:
        await memory_storage.write_many(
            [
                MetricRecord(type=MetricType.WEB, date=frozen_now - 100, source="web.1", memory=200),
                MetricRecord(type=MetricType.WEB, date=frozen_now - 10, source="web.2", memory=300),
            ]
        )

        response = await client.get(f"/memory/{TOKEN}")

        assert response.json() == {"item": [{"value": 250.0}, [0] * 11 + [250.0]]}


class TestQueryFailures:
    @pytest.mark.parametrize(
        "url",
        ["/service/home/{token}", "/throughput/{token}", "/memory/{token}"],
    )
    async def test_storage_error_answers_500_with_empty_body(
        self,
        client,
        memory_storage: InMemoryMetricsStorage,
        caplog: pytest.LogCaptureFixture,
        url: str,
    ) -> None:
        memory_storage.fail_with = RuntimeError("connection refused")

        with caplog.at_level(logging.ERROR):
            response = await client.get(url.format(token=TOKEN))

        assert response.status_code == 500
        assert response.content == b""
        assert "aggregate" in caplog.text


class TestHealthEndpoint:
    async def test_reports_buffered_records(self, client, app_with_storage) -> None:
        await client.post(f"/drain/{TOKEN}", content=ROUTER_LINE, headers=LOGPLEX)

        response = await client.get("/health")

        assert response.json() == {"status": "ok", "buffered": 1}


class TestApplicationLifecycle:
    async def test_sqlite_end_to_end(
        self, settings: Settings, asgi_test_client, frozen_now: float
    ) -> None:
        app = create_app(settings)
        line = router_line("/property/7", service=321)

        async with asgi_test_client(app) as client:
            await client.post(f"/drain/{TOKEN}", content=line, headers=LOGPLEX)
            await app.state.committer.commit_once()
            response = await client.get(f"/service/property/{TOKEN}")

        assert await app.state.storage.count() == 1
        assert response.status_code == 200
        value, series = response.json()["item"]
        assert value == {"value": 321}
        assert series[:-1] == [0] * 359
        await app.state.storage.close()

    async def test_lifespan_flushes_buffer_on_shutdown(
        self, memory_storage: InMemoryMetricsStorage
    ) -> None:
        app = create_app(
            Settings(token=TOKEN, commit_interval=3600, sweep_interval=3600),
            storage=memory_storage,
        )

        async with app.router.lifespan_context(app):
            assert app.state.committer.running
            assert app.state.sweeper.running
            app.state.buffer.append(MetricRecord(type=MetricType.WEB, date=time.time()))

        assert not app.state.committer.running
        assert await memory_storage.count() == 1

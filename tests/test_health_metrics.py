"""
Tests for /health, /readyz and /metrics, including degraded mode where the
Postgres pool never opened.
"""

from __future__ import annotations

from typing import Generator
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from backend.container import build_container
from backend.core.config import Settings
from backend.main import create_app
from tests.helpers import bearer, create_project_token, make_payload


@pytest.fixture
def degraded_client() -> Generator[TestClient, None, None]:
    """App configured for Postgres whose pool fails to open."""
    settings = Settings(
        ENVIRONMENT="dev",
        STORE_BACKEND="postgres",
        DATABASE_URL="",
        TOKEN_HASH_ROUNDS=4,
    )  # type: ignore[call-arg]
    with patch("backend.container.init_db_pool", AsyncMock(return_value=None)):
        with TestClient(create_app(settings), raise_server_exceptions=False) as test_client:
            yield test_client


class TestLiveness:
    def test_health_ok_without_auth(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "timestamp" in data
        assert "version" in data

    def test_health_ok_in_degraded_mode(self, degraded_client: TestClient) -> None:
        assert degraded_client.get("/health").status_code == 200


class TestReadiness:
    def test_ready_with_memory_store(self, client: TestClient) -> None:
        response = client.get("/readyz")

        assert response.status_code == 200
        assert response.json()["ready"] is True
        assert response.json()["store"] == "memory"

    def test_not_ready_without_pool(self, degraded_client: TestClient) -> None:
        response = degraded_client.get("/readyz")

        assert response.status_code == 503
        data = response.json()
        assert data["ready"] is False
        assert data["status"] == "not_ready"

    def test_service_endpoints_unavailable_without_pool(self, degraded_client: TestClient) -> None:
        ingest = degraded_client.post(
            "/api/v1/ingest", json=make_payload(), headers=bearer("ik_" + "0" * 64)
        )
        orgs = degraded_client.post("/api/v1/orgs", json={"name": "Acme"})

        assert ingest.status_code == 503
        assert ingest.json()["error"] == "service_unavailable"
        assert orgs.status_code == 503


class TestMetrics:
    def test_known_counters_present(self, client: TestClient) -> None:
        data = client.get("/metrics").json()

        assert data["uptime_seconds"] >= 0
        assert "timestamp" in data
        for name in ("requests_total", "test_runs_ingested", "duplicate_runs_rejected"):
            assert name in data["counters"]

    def test_counters_track_ingestion(self, client: TestClient) -> None:
        _, token = create_project_token(client)
        client.post("/api/v1/ingest", json=make_payload(), headers=bearer(token))
        client.post("/api/v1/ingest", json=make_payload(), headers=bearer(token))
        client.post("/api/v1/ingest", json=make_payload(run_id="nope"), headers=bearer(token))
        client.post("/api/v1/ingest", json=make_payload())

        counters = client.get("/metrics").json()["counters"]

        assert counters["orgs_created"] == 1
        assert counters["projects_created"] == 1
        assert counters["tokens_created"] == 1
        assert counters["test_runs_ingested"] == 1
        assert counters["duplicate_runs_rejected"] == 1
        assert counters["validation_failures"] == 1
        assert counters["auth_failures"] == 1
        # 3 admin calls + 4 ingest calls, /metrics itself counted on entry
        assert counters["requests_total"] == 8


@pytest.mark.asyncio
async def test_build_container_memory_is_ready() -> None:
    settings = Settings(STORE_BACKEND="memory", TOKEN_HASH_ROUNDS=4)  # type: ignore[call-arg]

    container = await build_container(settings)

    assert container.ready
    assert container.ingest is not None
    assert container.projects is not None

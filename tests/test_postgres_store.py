"""
Integration tests for backend/stores/postgres.py

Require a disposable Postgres in DATABASE_URL. The schema is created with
ensure_schema(); every test works under fresh org/project names so runs do
not collide across test sessions.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from datetime import datetime, timezone

import pytest
from psycopg_pool import AsyncConnectionPool

from backend.db import ensure_schema
from backend.services.credential_service import CredentialStore
from backend.stores.base import InsertOutcome, NewRun, RecordExistsError, RejectedValueError
from backend.stores.postgres import PostgresStore

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not os.environ.get("DATABASE_URL", "").strip(),
        reason="DATABASE_URL not set - Postgres integration tests skipped",
    ),
]


def _run(run_id: str) -> NewRun:
    return NewRun(
        run_id=run_id,
        environment="ci",
        timestamp=datetime(2024, 5, 1, 12, tzinfo=timezone.utc),
        summary={"total_test_cases": 1, "passed": 1, "failed": 0, "flaky": 0, "skipped": 0, "duration_ms": 10},
        test_suites=[{"suite_name": "smoke", "test_cases": []}],
    )


async def _open_store() -> tuple[AsyncConnectionPool, PostgresStore]:
    pool = AsyncConnectionPool(os.environ["DATABASE_URL"], min_size=1, max_size=10, open=False)
    await pool.open()
    await ensure_schema(pool)
    return pool, PostgresStore(pool)


async def _new_project(store: PostgresStore) -> str:
    org = await store.create_organization(f"it-org-{uuid.uuid4().hex}")
    project = await store.create_project(org.id, "web")
    return project.id


class TestPostgresStore:
    @pytest.mark.asyncio
    async def test_insert_created_then_duplicate(self) -> None:
        pool, store = await _open_store()
        try:
            project_id = await _new_project(store)

            assert await store.insert_run(project_id, _run("tr_it_1")) is InsertOutcome.CREATED
            assert await store.insert_run(project_id, _run("tr_it_1")) is InsertOutcome.DUPLICATE

            record = await store.get_run(project_id, "tr_it_1")
            assert record is not None
            assert record.summary["passed"] == 1
            assert record.test_suites[0]["suite_name"] == "smoke"
        finally:
            await pool.close()

    @pytest.mark.asyncio
    async def test_concurrent_inserts_single_winner(self) -> None:
        pool, store = await _open_store()
        try:
            project_id = await _new_project(store)

            outcomes = await asyncio.gather(
                *(store.insert_run(project_id, _run("tr_race")) for _ in range(8))
            )

            assert outcomes.count(InsertOutcome.CREATED) == 1
            assert outcomes.count(InsertOutcome.DUPLICATE) == 7
            assert await store.count_runs(project_id, "tr_race") == 1
        finally:
            await pool.close()

    @pytest.mark.asyncio
    async def test_duplicate_org_name(self) -> None:
        pool, store = await _open_store()
        try:
            name = f"it-org-{uuid.uuid4().hex}"
            await store.create_organization(name)
            with pytest.raises(RecordExistsError):
                await store.create_organization(name)
        finally:
            await pool.close()

    @pytest.mark.asyncio
    async def test_credentials_round_trip(self) -> None:
        pool, store = await _open_store()
        try:
            project_id = await _new_project(store)
            credentials = CredentialStore(store, hash_rounds=4)

            issued = await credentials.issue(project_id)
            resolved = await credentials.resolve(issued.raw_token)

            assert resolved is not None
            assert resolved.project_id == project_id
            assert await store.ping() is True
        finally:
            await pool.close()

    @pytest.mark.asyncio
    async def test_nul_in_run_is_rejected_value(self) -> None:
        pool, store = await _open_store()
        try:
            project_id = await _new_project(store)
            run = _run("tr_nul")
            run.test_suites[0]["suite_name"] = "smoke\x00"

            with pytest.raises(RejectedValueError):
                await store.insert_run(project_id, run)

            assert await store.count_runs(project_id, "tr_nul") == 0
        finally:
            await pool.close()

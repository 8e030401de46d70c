"""
Run Ingest Engine - Postgres Store

psycopg3 implementation of the storage protocols on top of the shared
AsyncConnectionPool (see backend.db).

Idempotent run insert:

    INSERT ... ON CONFLICT (project_id, run_id) DO NOTHING RETURNING id

A returned row means this statement created the record; no row means the
unique constraint already held a record for the key. The check and the write
are one statement, so concurrent submissions are arbitrated by Postgres and
no driver error text is ever inspected.
"""

from __future__ import annotations

import uuid
from typing import Any

import psycopg
from loguru import logger
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from .base import (
    InsertOutcome,
    NewRun,
    Organization,
    Project,
    RecordExistsError,
    RejectedValueError,
    RunRecord,
    StoreError,
    StoredCredential,
)


def _credential_from_row(row: dict[str, Any]) -> StoredCredential:
    return StoredCredential(
        id=row["id"],
        project_id=row["project_id"],
        token_hash=row["token_hash"],
        lookup_key=row["lookup_key"],
        created_at=row["created_at"],
        name=row["name"],
    )


class PostgresStore:
    """Storage backend over an async psycopg pool."""

    def __init__(self, pool: AsyncConnectionPool):
        self._pool = pool

    async def _fetchone(self, operation: str, query: str, params: tuple[Any, ...]) -> dict[str, Any] | None:
        try:
            async with self._pool.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(query, params)
                    return await cur.fetchone()
        except psycopg.errors.UniqueViolation as e:
            raise RecordExistsError(str(e).splitlines()[0], operation=operation) from e
        except psycopg.errors.DataError as e:
            logger.warning(f"Postgres {operation} rejected a value: {type(e).__name__}")
            raise RejectedValueError(f"{operation} rejected a value: {type(e).__name__}", operation=operation) from e
        except psycopg.Error as e:
            logger.error(f"Postgres {operation} failed: {type(e).__name__}")
            raise StoreError(f"{operation} failed: {type(e).__name__}", operation=operation) from e

    async def _fetchall(self, operation: str, query: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        try:
            async with self._pool.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(query, params)
                    return list(await cur.fetchall())
        except psycopg.Error as e:
            logger.error(f"Postgres {operation} failed: {type(e).__name__}")
            raise StoreError(f"{operation} failed: {type(e).__name__}", operation=operation) from e

    # -------------------------------------------------------------------------
    # Organizations / projects
    # -------------------------------------------------------------------------

    async def create_organization(self, name: str) -> Organization:
        row = await self._fetchone(
            "create_organization",
            """
            INSERT INTO ingest.organizations (id, name)
            VALUES (%s, %s)
            ON CONFLICT (name) DO NOTHING
            RETURNING id, name, created_at
            """,
            (str(uuid.uuid4()), name),
        )
        if row is None:
            raise RecordExistsError(
                f"Organization '{name}' already exists", operation="create_organization"
            )
        return Organization(id=row["id"], name=row["name"], created_at=row["created_at"])

    async def get_organization(self, org_id: str) -> Organization | None:
        row = await self._fetchone(
            "get_organization",
            "SELECT id, name, created_at FROM ingest.organizations WHERE id = %s",
            (org_id,),
        )
        if row is None:
            return None
        return Organization(id=row["id"], name=row["name"], created_at=row["created_at"])

    async def create_project(self, org_id: str, name: str) -> Project:
        row = await self._fetchone(
            "create_project",
            """
            INSERT INTO ingest.projects (id, org_id, name)
            VALUES (%s, %s, %s)
            ON CONFLICT (org_id, name) DO NOTHING
            RETURNING id, org_id, name, created_at
            """,
            (str(uuid.uuid4()), org_id, name),
        )
        if row is None:
            raise RecordExistsError(
                f"Project '{name}' already exists in this organization",
                operation="create_project",
            )
        return Project(
            id=row["id"], org_id=row["org_id"], name=row["name"], created_at=row["created_at"]
        )

    async def project_exists(self, project_id: str) -> bool:
        row = await self._fetchone(
            "project_exists",
            "SELECT 1 AS found FROM ingest.projects WHERE id = %s",
            (project_id,),
        )
        return row is not None

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------

    async def add_credential(
        self,
        project_id: str,
        token_hash: str,
        lookup_key: str | None,
        name: str | None = None,
    ) -> StoredCredential:
        row = await self._fetchone(
            "add_credential",
            """
            INSERT INTO ingest.api_tokens (id, project_id, name, token_hash, lookup_key)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id, project_id, name, token_hash, lookup_key, created_at
            """,
            (str(uuid.uuid4()), project_id, name, token_hash, lookup_key),
        )
        if row is None:
            raise StoreError("INSERT ... RETURNING produced no row", operation="add_credential")
        return _credential_from_row(row)

    async def find_credentials(self, lookup_key: str) -> list[StoredCredential]:
        rows = await self._fetchall(
            "find_credentials",
            """
            SELECT id, project_id, name, token_hash, lookup_key, created_at
            FROM ingest.api_tokens
            WHERE lookup_key = %s
            """,
            (lookup_key,),
        )
        return [_credential_from_row(r) for r in rows]

    async def list_credentials(self) -> list[StoredCredential]:
        rows = await self._fetchall(
            "list_credentials",
            """
            SELECT id, project_id, name, token_hash, lookup_key, created_at
            FROM ingest.api_tokens
            ORDER BY created_at
            """,
            (),
        )
        return [_credential_from_row(r) for r in rows]

    # -------------------------------------------------------------------------
    # Runs
    # -------------------------------------------------------------------------

    async def insert_run(self, project_id: str, run: NewRun) -> InsertOutcome:
        row = await self._fetchone(
            "insert_run",
            """
            INSERT INTO ingest.test_runs
                (id, project_id, run_id, environment, run_timestamp, summary, test_suites)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT ON CONSTRAINT uq_test_runs_project_run DO NOTHING
            RETURNING id
            """,
            (
                str(uuid.uuid4()),
                project_id,
                run.run_id,
                run.environment,
                run.timestamp,
                Jsonb(run.summary),
                Jsonb(run.test_suites),
            ),
        )
        return InsertOutcome.CREATED if row is not None else InsertOutcome.DUPLICATE

    async def get_run(self, project_id: str, run_id: str) -> RunRecord | None:
        row = await self._fetchone(
            "get_run",
            """
            SELECT id, project_id, run_id, environment, run_timestamp,
                   summary, test_suites, created_at
            FROM ingest.test_runs
            WHERE project_id = %s AND run_id = %s
            """,
            (project_id, run_id),
        )
        if row is None:
            return None
        return RunRecord(
            id=row["id"],
            project_id=row["project_id"],
            run_id=row["run_id"],
            environment=row["environment"],
            timestamp=row["run_timestamp"],
            summary=row["summary"],
            test_suites=row["test_suites"],
            created_at=row["created_at"],
        )

    async def count_runs(self, project_id: str, run_id: str) -> int:
        row = await self._fetchone(
            "count_runs",
            "SELECT count(*) AS n FROM ingest.test_runs WHERE project_id = %s AND run_id = %s",
            (project_id, run_id),
        )
        return int(row["n"]) if row else 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def ping(self) -> bool:
        try:
            row = await self._fetchone("ping", "SELECT 1 AS ok", ())
        except StoreError:
            return False
        return bool(row and row["ok"] == 1)

    async def close(self) -> None:
        # The pool is owned by backend.db; close_db_pool() shuts it down.
        return None

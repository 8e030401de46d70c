"""
Run Ingest Engine - In-Memory Store

Dict-backed implementation of the storage protocols for local development and
tests. It plays the storage engine's role: every uniqueness check and its write
happen under one lock, the same guarantee a UNIQUE index gives Postgres.

Not for production (Settings refuses STORE_BACKEND=memory in prod).
"""

from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime, timezone

from .base import (
    InsertOutcome,
    NewRun,
    Organization,
    Project,
    RecordExistsError,
    RunRecord,
    StoredCredential,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryStore:
    """Thread-safe in-process store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._orgs: dict[str, Organization] = {}
        self._org_names: set[str] = set()
        self._projects: dict[str, Project] = {}
        self._project_names: set[tuple[str, str]] = set()
        self._credentials: dict[str, StoredCredential] = {}
        self._runs: dict[tuple[str, str], RunRecord] = {}

    # -------------------------------------------------------------------------
    # Organizations / projects
    # -------------------------------------------------------------------------

    async def create_organization(self, name: str) -> Organization:
        with self._lock:
            if name in self._org_names:
                raise RecordExistsError(
                    f"Organization '{name}' already exists", operation="create_organization"
                )
            org = Organization(id=str(uuid.uuid4()), name=name, created_at=_now())
            self._orgs[org.id] = org
            self._org_names.add(name)
            return org

    async def get_organization(self, org_id: str) -> Organization | None:
        with self._lock:
            return self._orgs.get(org_id)

    async def create_project(self, org_id: str, name: str) -> Project:
        with self._lock:
            if (org_id, name) in self._project_names:
                raise RecordExistsError(
                    f"Project '{name}' already exists in this organization",
                    operation="create_project",
                )
            project = Project(id=str(uuid.uuid4()), org_id=org_id, name=name, created_at=_now())
            self._projects[project.id] = project
            self._project_names.add((org_id, name))
            return project

    async def project_exists(self, project_id: str) -> bool:
        with self._lock:
            return project_id in self._projects

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
        with self._lock:
            if any(c.token_hash == token_hash for c in self._credentials.values()):
                raise RecordExistsError("token_hash already stored", operation="add_credential")
            credential = StoredCredential(
                id=str(uuid.uuid4()),
                project_id=project_id,
                token_hash=token_hash,
                lookup_key=lookup_key,
                created_at=_now(),
                name=name,
            )
            self._credentials[credential.id] = credential
            return credential

    async def find_credentials(self, lookup_key: str) -> list[StoredCredential]:
        with self._lock:
            return [c for c in self._credentials.values() if c.lookup_key == lookup_key]

    async def list_credentials(self) -> list[StoredCredential]:
        with self._lock:
            return list(self._credentials.values())

    # -------------------------------------------------------------------------
    # Runs
    # -------------------------------------------------------------------------

    async def insert_run(self, project_id: str, run: NewRun) -> InsertOutcome:
        key = (project_id, run.run_id)
        with self._lock:
            if key in self._runs:
                return InsertOutcome.DUPLICATE
            self._runs[key] = RunRecord(
                id=str(uuid.uuid4()),
                project_id=project_id,
                run_id=run.run_id,
                environment=run.environment,
                timestamp=run.timestamp,
                summary=copy.deepcopy(run.summary),
                test_suites=copy.deepcopy(run.test_suites),
                created_at=_now(),
            )
            return InsertOutcome.CREATED

    async def get_run(self, project_id: str, run_id: str) -> RunRecord | None:
        with self._lock:
            return self._runs.get((project_id, run_id))

    async def count_runs(self, project_id: str, run_id: str) -> int:
        with self._lock:
            return 1 if (project_id, run_id) in self._runs else 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

"""
Run Ingest Engine - Storage Contracts

Records and repository protocols shared by the Postgres and in-memory
backends. Services depend on these protocols only.

Run idempotency lives here: insert_run() returns InsertOutcome.DUPLICATE when
the (project_id, run_id) uniqueness constraint rejects the row. The decision is
made by the storage engine in the same statement as the write, so two racing
inserts for one key can never both observe CREATED.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol


class InsertOutcome(str, Enum):
    """Result of an idempotent run insert."""

    CREATED = "created"
    DUPLICATE = "duplicate"


class StoreError(Exception):
    """Storage unavailable or in an unexpected state (server fault)."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.message = message
        self.operation = operation


class RecordExistsError(StoreError):
    """A collaborator uniqueness constraint rejected the write."""


class RejectedValueError(StoreError):
    """The backend refused a value in the record itself (bad client data)."""


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class Organization:
    id: str
    name: str
    created_at: datetime


@dataclass(frozen=True)
class Project:
    id: str
    org_id: str
    name: str
    created_at: datetime


@dataclass(frozen=True)
class StoredCredential:
    """
    A persisted credential. Holds the bcrypt hash only; the raw token is
    never stored.

    lookup_key is a truncated SHA-256 fingerprint of the raw token. It narrows
    the candidate set during resolution but is never accepted as proof of
    possession.
    """

    id: str
    project_id: str
    token_hash: str
    lookup_key: str | None
    created_at: datetime
    name: str | None = None


@dataclass(frozen=True)
class NewRun:
    """A validated run ready to be written."""

    run_id: str
    environment: str
    timestamp: datetime
    summary: dict[str, Any]
    test_suites: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class RunRecord:
    """A stored run. Immutable once written."""

    id: str
    project_id: str
    run_id: str
    environment: str
    timestamp: datetime
    summary: dict[str, Any]
    test_suites: list[dict[str, Any]]
    created_at: datetime


# =============================================================================
# Repository Protocols
# =============================================================================


class OrganizationRepository(Protocol):
    async def create_organization(self, name: str) -> Organization: ...

    async def get_organization(self, org_id: str) -> Organization | None: ...


class ProjectDirectory(Protocol):
    """Project lookups consumed by token issuance."""

    async def create_project(self, org_id: str, name: str) -> Project: ...

    async def project_exists(self, project_id: str) -> bool: ...


class CredentialRepository(Protocol):
    async def add_credential(
        self,
        project_id: str,
        token_hash: str,
        lookup_key: str | None,
        name: str | None = None,
    ) -> StoredCredential: ...

    async def find_credentials(self, lookup_key: str) -> list[StoredCredential]: ...

    async def list_credentials(self) -> list[StoredCredential]: ...


class RunRepository(Protocol):
    async def insert_run(self, project_id: str, run: NewRun) -> InsertOutcome: ...

    async def get_run(self, project_id: str, run_id: str) -> RunRecord | None: ...

    async def count_runs(self, project_id: str, run_id: str) -> int: ...


class IngestStore(
    OrganizationRepository,
    ProjectDirectory,
    CredentialRepository,
    RunRepository,
    Protocol,
):
    """Everything a backend provides, plus lifecycle hooks."""

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...

"""
Run Ingest Engine - Storage Backends
"""

from .base import (
    CredentialRepository,
    IngestStore,
    InsertOutcome,
    NewRun,
    Organization,
    OrganizationRepository,
    Project,
    ProjectDirectory,
    RecordExistsError,
    RejectedValueError,
    RunRecord,
    RunRepository,
    StoredCredential,
    StoreError,
)
from .memory import MemoryStore

__all__ = [
    "CredentialRepository",
    "IngestStore",
    "InsertOutcome",
    "MemoryStore",
    "NewRun",
    "Organization",
    "OrganizationRepository",
    "Project",
    "ProjectDirectory",
    "RecordExistsError",
    "RejectedValueError",
    "RunRecord",
    "RunRepository",
    "StoredCredential",
    "StoreError",
]

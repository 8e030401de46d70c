"""
Run Ingest Engine - Business Services
"""

from .credential_service import CredentialStore, IssuedCredential, ResolvedCredential
from .ingest_service import IngestResult, IngestService
from .project_service import ProjectService
from .run_validator import RunValidator, build_new_run, validate_run_payload

__all__ = [
    # Credentials
    "CredentialStore",
    "IssuedCredential",
    "ResolvedCredential",
    # Ingestion
    "IngestResult",
    "IngestService",
    "RunValidator",
    "build_new_run",
    "validate_run_payload",
    # Collaborators
    "ProjectService",
]

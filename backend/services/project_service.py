"""
Run Ingest Engine - Organization / Project / Token Service

Thin collaborator layer around the store: create organizations and projects,
and mint ingestion tokens for existing projects. Uniqueness is enforced by the
store; this module only translates store outcomes into API errors.
"""

from __future__ import annotations

import logging

from ..core.errors import ConflictError, InternalFaultError, NotFoundError
from ..core.metrics import MetricsPort
from ..stores.base import (
    Organization,
    OrganizationRepository,
    Project,
    ProjectDirectory,
    RecordExistsError,
    StoreError,
)
from .credential_service import CredentialStore, IssuedCredential

logger = logging.getLogger(__name__)


class ProjectService:
    def __init__(
        self,
        organizations: OrganizationRepository,
        projects: ProjectDirectory,
        credentials: CredentialStore,
        metrics: MetricsPort,
    ):
        self._organizations = organizations
        self._projects = projects
        self._credentials = credentials
        self._metrics = metrics

    async def create_organization(self, name: str) -> Organization:
        try:
            org = await self._organizations.create_organization(name)
        except RecordExistsError as e:
            raise ConflictError("Organization with this name already exists") from e
        except StoreError as e:
            logger.error(f"create_organization failed: {e.message}", extra={"operation": e.operation})
            raise InternalFaultError("Failed to create organization") from e

        self._metrics.increment("orgs_created")
        logger.info(f"[ORG_CREATED] org_id={org.id} name={org.name!r}")
        return org

    async def create_project(self, org_id: str, name: str) -> Project:
        try:
            if await self._organizations.get_organization(org_id) is None:
                raise NotFoundError("Organization not found")
            project = await self._projects.create_project(org_id, name)
        except RecordExistsError as e:
            raise ConflictError("Project with this name already exists in this organization") from e
        except StoreError as e:
            logger.error(f"create_project failed: {e.message}", extra={"operation": e.operation})
            raise InternalFaultError("Failed to create project") from e

        self._metrics.increment("projects_created")
        logger.info(f"[PROJECT_CREATED] project_id={project.id} org_id={org_id} name={name!r}")
        return project

    async def issue_token(self, project_id: str, name: str | None = None) -> IssuedCredential:
        """Mint a token; the project must already exist."""
        try:
            if not await self._projects.project_exists(project_id):
                raise NotFoundError("Project not found")
            issued = await self._credentials.issue(project_id, name=name)
        except StoreError as e:
            logger.error(
                f"issue_token failed: {e.message}",
                extra={"operation": e.operation, "project_id": project_id},
            )
            raise InternalFaultError("Failed to create token") from e

        self._metrics.increment("tokens_created")
        logger.info(
            f"[TOKEN_CREATED] token_id={issued.credential_id} project_id={project_id}",
            extra={"credential_id": issued.credential_id, "project_id": project_id},
        )
        return issued

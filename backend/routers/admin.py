"""
Run Ingest Engine - Admin Router

Organization, project and token management. Guarded by X-API-Key
(see require_admin_key).

    POST /api/v1/orgs      {name}
    POST /api/v1/projects  {name, org_id}
    POST /api/v1/tokens    {project_id, name?}
"""

import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator

from ..container import get_project_service
from ..core.errors import ErrorResponse
from ..core.security import require_admin_key
from ..services.project_service import ProjectService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["Admin"],
    dependencies=[Depends(require_admin_key)],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request body"},
        401: {"model": ErrorResponse, "description": "Missing or invalid API key"},
    },
)

MAX_NAME_LENGTH = 255


def _clean_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


# =============================================================================
# Request / Response Models
# =============================================================================


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        return _clean_name(v)


class OrganizationOut(BaseModel):
    id: str
    name: str


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    org_id: str = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        return _clean_name(v)


class ProjectOut(BaseModel):
    id: str
    org_id: str
    name: str


class TokenCreate(BaseModel):
    project_id: str = Field(..., min_length=1)
    name: str | None = Field(default=None, max_length=MAX_NAME_LENGTH)


class TokenOut(BaseModel):
    """The raw token appears here once and is never retrievable again."""

    id: str
    project_id: str
    name: str | None = None
    token: str
    message: str = "Store this token securely. It will not be shown again."


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "/orgs",
    response_model=OrganizationOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an organization",
    responses={409: {"model": ErrorResponse, "description": "Name already taken"}},
)
async def create_organization(
    body: OrganizationCreate,
    service: ProjectService = Depends(get_project_service),
) -> OrganizationOut:
    org = await service.create_organization(body.name)
    return OrganizationOut(id=org.id, name=org.name)


@router.post(
    "/projects",
    response_model=ProjectOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a project inside an organization",
    responses={
        404: {"model": ErrorResponse, "description": "Organization not found"},
        409: {"model": ErrorResponse, "description": "Name already taken in this organization"},
    },
)
async def create_project(
    body: ProjectCreate,
    service: ProjectService = Depends(get_project_service),
) -> ProjectOut:
    project = await service.create_project(body.org_id, body.name)
    return ProjectOut(id=project.id, org_id=project.org_id, name=project.name)


@router.post(
    "/tokens",
    response_model=TokenOut,
    status_code=status.HTTP_201_CREATED,
    summary="Issue an ingestion token for a project",
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def create_token(
    body: TokenCreate,
    service: ProjectService = Depends(get_project_service),
) -> TokenOut:
    issued = await service.issue_token(body.project_id, name=body.name)
    return TokenOut(
        id=issued.credential_id,
        project_id=issued.project_id,
        name=issued.name,
        token=issued.raw_token,
    )

"""
Run Ingest Engine - Ingest Router

POST /api/v1/ingest

Authenticated with a project-scoped bearer token. The body is read as raw
JSON and handed to the validator untouched, so every rule violation is
reported in one 400 instead of failing on the first pydantic error.

Outcomes:
    201  run stored                      {"status": "created", "duplicate": false, ...}
    200  run_id already stored           {"status": "duplicate", "duplicate": true, ...}
    400  malformed JSON / rule violations
    401  missing or unknown token
    500  storage failure (no internals leaked)
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..container import get_ingest_service
from ..core.errors import BadRequestError, ErrorResponse
from ..services.ingest_service import IngestResult, IngestService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["Ingest"],
)


# =============================================================================
# Response Models
# =============================================================================


class IngestCreatedResponse(BaseModel):
    """Returned with 201 when a new run was stored."""

    status: str = "created"
    duplicate: bool = False
    run_id: str
    environment: str
    summary: dict[str, Any]
    message: str = Field(default="Test run ingested successfully")


class IngestDuplicateResponse(BaseModel):
    """Returned with 200 when the run_id was already stored for this project."""

    status: str = "duplicate"
    duplicate: bool = True
    run_id: str
    message: str = Field(default="Test run already exists; no changes made")


def render_result(result: IngestResult) -> JSONResponse:
    if result.duplicate:
        body = IngestDuplicateResponse(run_id=result.run_id)
        return JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump())

    body = IngestCreatedResponse(
        run_id=result.run_id,
        environment=result.environment,
        summary=result.summary,
    )
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=body.model_dump())


async def read_json_body(request: Request) -> Any:
    """
    Decode the request body as JSON.

    Raises:
        BadRequestError: empty body, invalid JSON, or JSON the decoder
            refuses (over-long integer literals, excessive nesting)
    """
    raw = await request.body()
    if not raw.strip():
        raise BadRequestError("Request body is empty")
    try:
        return json.loads(raw)
    except (ValueError, RecursionError) as e:
        logger.warning(f"Rejected malformed JSON body: {type(e).__name__}")
        raise BadRequestError("Invalid JSON payload") from e


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "/ingest",
    summary="Ingest a test run",
    description="""
    Submit one test run for the project that owns the bearer token.

    Re-submitting the same run_id is safe: the first submission is stored and
    every later one is acknowledged with 200 and duplicate=true.
    """,
    status_code=status.HTTP_201_CREATED,
    responses={
        200: {"model": IngestDuplicateResponse, "description": "Run already stored"},
        201: {"model": IngestCreatedResponse, "description": "Run stored"},
        400: {"model": ErrorResponse, "description": "Malformed JSON or invalid payload"},
        401: {"model": ErrorResponse, "description": "Missing or invalid token"},
        500: {"model": ErrorResponse, "description": "Storage failure"},
    },
)
async def ingest_test_run(
    request: Request,
    authorization: str | None = Header(default=None),
    service: IngestService = Depends(get_ingest_service),
) -> JSONResponse:
    credential = await service.authenticate(authorization)
    payload = await read_json_body(request)
    result = await service.ingest_for(credential, payload)
    return render_result(result)

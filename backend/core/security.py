"""
Run Ingest Engine - Security Layer

- Bearer token extraction for ingestion requests (project-scoped tokens are
  resolved by the CredentialStore, not here)
- X-API-Key check guarding the admin endpoints (orgs, projects, tokens)
"""

import secrets

from fastapi import Header, Request
from loguru import logger

from .config import Settings
from .errors import UnauthorizedError

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str | None) -> str:
    """
    Pull the raw token out of an Authorization header.

    Raises:
        UnauthorizedError: header missing, wrong scheme, or empty token
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise UnauthorizedError(
            "Missing or invalid Authorization header. Expected: Bearer <token>"
        )

    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise UnauthorizedError("Token is empty")

    return token


async def require_admin_key(
    request: Request,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> None:
    """
    FastAPI dependency for the admin endpoints.

    - ADMIN_API_KEY configured: X-API-Key must match (constant-time compare)
    - ADMIN_API_KEY unset outside prod: open, for local development
    - ADMIN_API_KEY unset in prod: every call is rejected
    """
    settings: Settings = request.app.state.settings
    configured_key = settings.ADMIN_API_KEY

    if not configured_key:
        if settings.is_production:
            logger.warning("Admin call rejected: ADMIN_API_KEY not configured in production")
            raise UnauthorizedError("Admin API key not configured")
        return None

    if x_api_key and secrets.compare_digest(x_api_key.encode(), configured_key.encode()):
        logger.debug("Authenticated admin call via API key")
        return None

    logger.warning("Invalid admin API key attempted")
    raise UnauthorizedError("Invalid API key")

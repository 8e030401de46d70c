"""
Run Ingest Engine - Service Container

Builds the object graph once per process and hangs it on app.state:

    store (postgres | memory)
      -> CredentialStore
      -> RunValidator
      -> IngestService, ProjectService

Routers reach the services through the FastAPI dependencies at the bottom of
this module, never through module globals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import psycopg
from fastapi import Request

from .core.config import Settings
from .core.errors import ServiceUnavailableError
from .core.metrics import InMemoryMetrics
from .db import ensure_schema, init_db_pool
from .services.credential_service import CredentialStore
from .services.ingest_service import IngestService
from .services.project_service import ProjectService
from .services.run_validator import RunValidator
from .stores.base import IngestStore
from .stores.memory import MemoryStore
from .stores.postgres import PostgresStore

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    metrics: InMemoryMetrics
    store: IngestStore | None = None
    credentials: CredentialStore | None = None
    ingest: IngestService | None = None
    projects: ProjectService | None = None

    @property
    def ready(self) -> bool:
        return self.store is not None


def wire_services(container: ServiceContainer, store: IngestStore) -> ServiceContainer:
    """Attach a store and build every service that depends on it."""
    settings = container.settings

    credentials = CredentialStore(
        store,
        hash_rounds=settings.TOKEN_HASH_ROUNDS,
        lookup=settings.CREDENTIAL_LOOKUP,
    )
    validator = RunValidator(
        run_id_prefix=settings.RUN_ID_PREFIX,
        min_suffix_length=settings.RUN_ID_MIN_SUFFIX_LENGTH,
    )

    container.store = store
    container.credentials = credentials
    container.ingest = IngestService(credentials, store, validator, container.metrics)
    container.projects = ProjectService(store, store, credentials, container.metrics)
    return container


async def build_container(
    settings: Settings, metrics: InMemoryMetrics | None = None
) -> ServiceContainer:
    """
    Open the configured store and wire the services.

    Never raises for an unreachable database: the container comes back without
    a store, the app still boots, /readyz reports 503 and service endpoints
    answer 503 until a restart succeeds.
    """
    container = ServiceContainer(settings=settings, metrics=metrics or InMemoryMetrics())

    if settings.STORE_BACKEND == "memory":
        logger.info("Using in-memory store (runs are not persisted across restarts)")
        return wire_services(container, MemoryStore())

    pool = await init_db_pool(settings)
    if pool is None:
        logger.error("Postgres pool unavailable - starting without a store")
        return container

    try:
        await ensure_schema(pool)
    except psycopg.Error as e:
        logger.error(f"Schema bootstrap failed: {type(e).__name__}: {e}")
        return container

    return wire_services(container, PostgresStore(pool))


# =============================================================================
# FastAPI dependencies
# =============================================================================


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_ingest_service(request: Request) -> IngestService:
    service = get_container(request).ingest
    if service is None:
        raise ServiceUnavailableError()
    return service


def get_project_service(request: Request) -> ProjectService:
    service = get_container(request).projects
    if service is None:
        raise ServiceUnavailableError()
    return service

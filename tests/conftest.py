"""
tests/conftest.py

Pytest configuration and shared fixtures for the Run Ingest Engine test suite.

By default every test runs against the in-memory store with a low bcrypt cost.
Tests marked ``integration`` need a live Postgres in DATABASE_URL and are
skipped without one.
"""

from __future__ import annotations

import os
from typing import Any, Generator

import pytest
from fastapi.testclient import TestClient

from backend.core.config import Settings, reset_settings
from backend.core.metrics import InMemoryMetrics
from backend.services.credential_service import CredentialStore
from backend.services.ingest_service import IngestService
from backend.services.project_service import ProjectService
from backend.services.run_validator import RunValidator
from backend.stores.memory import MemoryStore
from tests.helpers import make_payload

TEST_HASH_ROUNDS = 4

# =============================================================================
# GLOBAL TEST CONFIGURATION
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """
    Global pytest configuration.

    Forces the memory store and a cheap bcrypt cost for anything that reads
    settings from the environment (including the module-level app in
    backend.main). Runs BEFORE any test collection.
    """
    config.addinivalue_line(
        "markers",
        "integration: marks tests as requiring a live Postgres (DATABASE_URL)",
    )

    os.environ.setdefault("ENVIRONMENT", "dev")
    os.environ.setdefault("STORE_BACKEND", "memory")
    os.environ.setdefault("TOKEN_HASH_ROUNDS", str(TEST_HASH_ROUNDS))


def _has_db_connection() -> bool:
    return bool(os.environ.get("DATABASE_URL", "").strip())


skip_if_no_db = pytest.mark.skipif(
    not _has_db_connection(),
    reason="DATABASE_URL not set - Postgres integration tests skipped",
)


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Reset the settings cache before and after each test."""
    reset_settings()
    yield
    reset_settings()


# =============================================================================
# PAYLOADS
# =============================================================================


@pytest.fixture
def valid_payload() -> dict[str, Any]:
    return make_payload()


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        ENVIRONMENT="dev",
        STORE_BACKEND="memory",
        TOKEN_HASH_ROUNDS=TEST_HASH_ROUNDS,
        ADMIN_API_KEY=None,
    )  # type: ignore[call-arg]


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def metrics() -> InMemoryMetrics:
    return InMemoryMetrics()


@pytest.fixture
def credential_store(store: MemoryStore) -> CredentialStore:
    return CredentialStore(store, hash_rounds=TEST_HASH_ROUNDS)


@pytest.fixture
def ingest_service(
    store: MemoryStore, credential_store: CredentialStore, metrics: InMemoryMetrics
) -> IngestService:
    return IngestService(credential_store, store, RunValidator(), metrics)


@pytest.fixture
def project_service(
    store: MemoryStore, credential_store: CredentialStore, metrics: InMemoryMetrics
) -> ProjectService:
    return ProjectService(store, store, credential_store, metrics)


# =============================================================================
# HTTP FIXTURES
# =============================================================================


@pytest.fixture
def client(settings: Settings) -> Generator[TestClient, None, None]:
    """TestClient with lifespan run (container built on the memory store)."""
    from backend.main import create_app

    app = create_app(settings)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

"""
Test the admin endpoints: organizations, projects, tokens.

Verifies:
1. 201 bodies and the one-time raw token
2. 400 for blank / oversized names
3. 404 for unknown parents, 409 for duplicate names
4. X-API-Key enforcement when ADMIN_API_KEY is configured
"""

from __future__ import annotations

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from backend.core.config import Settings
from backend.main import create_app
from backend.services.credential_service import is_well_formed_token
from tests.helpers import bearer, create_project_token, make_payload

ADMIN_KEY = "test-admin-key-12345"


@pytest.fixture
def secured_client() -> Generator[TestClient, None, None]:
    settings = Settings(
        ENVIRONMENT="dev",
        STORE_BACKEND="memory",
        TOKEN_HASH_ROUNDS=4,
        ADMIN_API_KEY=ADMIN_KEY,
    )  # type: ignore[call-arg]
    with TestClient(create_app(settings), raise_server_exceptions=False) as test_client:
        yield test_client


class TestOrganizations:
    def test_create(self, client: TestClient) -> None:
        response = client.post("/api/v1/orgs", json={"name": "  Acme  "})

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "Acme"
        assert data["id"]

    def test_duplicate_name(self, client: TestClient) -> None:
        client.post("/api/v1/orgs", json={"name": "Acme"})

        response = client.post("/api/v1/orgs", json={"name": "Acme"})

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    @pytest.mark.parametrize("body", [{}, {"name": ""}, {"name": "   "}, {"name": "x" * 256}])
    def test_invalid_name(self, client: TestClient, body: dict) -> None:
        response = client.post("/api/v1/orgs", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"


class TestProjects:
    def test_create(self, client: TestClient) -> None:
        org = client.post("/api/v1/orgs", json={"name": "Acme"}).json()

        response = client.post("/api/v1/projects", json={"name": "web", "org_id": org["id"]})

        assert response.status_code == 201
        assert response.json()["org_id"] == org["id"]
        assert response.json()["name"] == "web"

    def test_unknown_org(self, client: TestClient) -> None:
        response = client.post("/api/v1/projects", json={"name": "web", "org_id": "nope"})

        assert response.status_code == 404
        assert response.json()["message"] == "Organization not found"

    def test_duplicate_in_same_org(self, client: TestClient) -> None:
        org = client.post("/api/v1/orgs", json={"name": "Acme"}).json()
        client.post("/api/v1/projects", json={"name": "web", "org_id": org["id"]})

        response = client.post("/api/v1/projects", json={"name": "web", "org_id": org["id"]})

        assert response.status_code == 409

    def test_missing_org_id(self, client: TestClient) -> None:
        response = client.post("/api/v1/projects", json={"name": "web"})
        assert response.status_code == 400


class TestTokens:
    def test_create_returns_raw_token_once(self, client: TestClient) -> None:
        project_id, token = create_project_token(client)

        assert is_well_formed_token(token)
        ingest = client.post("/api/v1/ingest", json=make_payload(), headers=bearer(token))
        assert ingest.status_code == 201

    def test_body_shape(self, client: TestClient) -> None:
        org = client.post("/api/v1/orgs", json={"name": "Acme"}).json()
        project = client.post(
            "/api/v1/projects", json={"name": "web", "org_id": org["id"]}
        ).json()

        response = client.post(
            "/api/v1/tokens", json={"project_id": project["id"], "name": "ci"}
        )

        assert response.status_code == 201
        data = response.json()
        assert data["project_id"] == project["id"]
        assert data["name"] == "ci"
        assert data["id"]
        assert "not be shown again" in data["message"]

    def test_unknown_project(self, client: TestClient) -> None:
        response = client.post("/api/v1/tokens", json={"project_id": "nope"})

        assert response.status_code == 404
        assert response.json()["message"] == "Project not found"


class TestAdminKey:
    def test_missing_key_rejected(self, secured_client: TestClient) -> None:
        response = secured_client.post("/api/v1/orgs", json={"name": "Acme"})

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    def test_wrong_key_rejected(self, secured_client: TestClient) -> None:
        response = secured_client.post(
            "/api/v1/orgs", json={"name": "Acme"}, headers={"X-API-Key": "wrong"}
        )
        assert response.status_code == 401

    def test_correct_key_accepted(self, secured_client: TestClient) -> None:
        project_id, token = create_project_token(
            secured_client, headers={"X-API-Key": ADMIN_KEY}
        )
        assert project_id
        assert token

    def test_key_checked_before_body(self, secured_client: TestClient) -> None:
        response = secured_client.post("/api/v1/orgs", json={})
        assert response.status_code == 401

    def test_ingest_does_not_need_admin_key(self, secured_client: TestClient) -> None:
        _, token = create_project_token(secured_client, headers={"X-API-Key": ADMIN_KEY})

        response = secured_client.post(
            "/api/v1/ingest", json=make_payload(), headers=bearer(token)
        )

        assert response.status_code == 201

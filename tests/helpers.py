"""
tests/helpers.py

Payload builders and seeding helpers shared by the test modules.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi.testclient import TestClient

from backend.services.credential_service import CredentialStore, IssuedCredential
from backend.stores.memory import MemoryStore


def make_payload(run_id: str = "tr_build_42", **overrides: Any) -> dict[str, Any]:
    """A valid run payload; keyword overrides replace top-level fields."""
    payload: dict[str, Any] = {
        "run_id": run_id,
        "environment": "staging",
        "timestamp": "2024-05-01T12:00:00Z",
        "summary": {
            "total_test_cases": 3,
            "passed": 2,
            "failed": 1,
            "flaky": 0,
            "skipped": 0,
            "duration_ms": 900,
        },
        "test_suites": [
            {
                "suite_name": "checkout",
                "total_cases": 3,
                "passed": 2,
                "failed": 1,
                "duration_ms": 900,
                "test_cases": [
                    {"name": "adds item", "status": "passed", "duration_ms": 300},
                    {"name": "applies coupon", "status": "passed", "duration_ms": 250},
                    {
                        "name": "pays with card",
                        "status": "failed",
                        "duration_ms": 350,
                        "error_message": "timeout waiting for gateway",
                        "steps": ["open cart", "submit"],
                    },
                ],
            }
        ],
    }
    payload.update(overrides)
    return payload


async def seed_project(
    store: MemoryStore, credentials: CredentialStore, project_name: str = "web"
) -> IssuedCredential:
    """Create an org and project directly in the store and issue one token."""
    org = await store.create_organization(f"org-{uuid.uuid4().hex[:8]}")
    project = await store.create_project(org.id, project_name)
    return await credentials.issue(project.id, name="ci")


def create_project_token(
    client: TestClient, headers: dict[str, str] | None = None
) -> tuple[str, str]:
    """Create org -> project -> token through the admin API. Returns (project_id, token)."""
    suffix = uuid.uuid4().hex[:8]
    org = client.post("/api/v1/orgs", json={"name": f"org-{suffix}"}, headers=headers)
    assert org.status_code == 201, org.text
    project = client.post(
        "/api/v1/projects",
        json={"name": f"project-{suffix}", "org_id": org.json()["id"]},
        headers=headers,
    )
    assert project.status_code == 201, project.text
    token = client.post(
        "/api/v1/tokens",
        json={"project_id": project.json()["id"]},
        headers=headers,
    )
    assert token.status_code == 201, token.text
    return project.json()["id"], token.json()["token"]


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}

"""
Run Ingest Engine - Postgres Schema

DDL applied at startup by backend.db.ensure_schema(). Every statement is
idempotent (IF NOT EXISTS) so concurrent workers may run it safely.

The UNIQUE (project_id, run_id) constraint on ingest.test_runs is the
idempotency key. Nothing in application code re-implements it.
"""

SCHEMA_STATEMENTS: tuple[str, ...] = (
    "CREATE SCHEMA IF NOT EXISTS ingest",
    """
    CREATE TABLE IF NOT EXISTS ingest.organizations (
        id          TEXT PRIMARY KEY,
        name        TEXT NOT NULL UNIQUE,
        created_at  TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ingest.projects (
        id          TEXT PRIMARY KEY,
        org_id      TEXT NOT NULL REFERENCES ingest.organizations(id) ON DELETE CASCADE,
        name        TEXT NOT NULL,
        created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (org_id, name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ingest.api_tokens (
        id          TEXT PRIMARY KEY,
        project_id  TEXT NOT NULL REFERENCES ingest.projects(id) ON DELETE CASCADE,
        name        TEXT,
        token_hash  TEXT NOT NULL UNIQUE,
        lookup_key  TEXT,
        created_at  TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_api_tokens_lookup_key ON ingest.api_tokens(lookup_key)",
    """
    CREATE TABLE IF NOT EXISTS ingest.test_runs (
        id            TEXT PRIMARY KEY,
        project_id    TEXT NOT NULL REFERENCES ingest.projects(id) ON DELETE CASCADE,
        run_id        TEXT NOT NULL,
        environment   TEXT NOT NULL,
        run_timestamp TIMESTAMPTZ NOT NULL,
        summary       JSONB NOT NULL,
        test_suites   JSONB NOT NULL DEFAULT '[]'::jsonb,
        created_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT uq_test_runs_project_run UNIQUE (project_id, run_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_test_runs_project ON ingest.test_runs(project_id)",
)

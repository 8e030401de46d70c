# backend/db.py
"""
Run Ingest Engine - Database Layer

Provides async PostgreSQL connection pooling via psycopg3 + psycopg_pool.
Implements robust initialization with:
- Exponential backoff retry (bounded attempts and total wait)
- SSL enforcement in production (sslmode=require)
- Structured logging (DSN host/port/dbname/user, no password)
- Pool health state tracking for readiness probes
- Idempotent schema bootstrap
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from loguru import logger
from psycopg_pool import AsyncConnectionPool

from . import __version__
from .core.config import Settings
from .stores.schema import SCHEMA_STATEMENTS

# ---------------------------------------------------------------------------
# Pool Health State
# ---------------------------------------------------------------------------


@dataclass
class PoolHealthState:
    """Tracks database pool initialization state for readiness probes."""

    initialized: bool = False
    healthy: bool = False
    last_error: str | None = None
    last_check_at: float | None = None
    init_attempts: int = 0
    init_duration_ms: float | None = None


_pool_health = PoolHealthState()

_db_pool: Optional[AsyncConnectionPool] = None


def get_pool_health() -> PoolHealthState:
    """Return the current pool health state for readiness probes."""
    return _pool_health


# ---------------------------------------------------------------------------
# Low-level DB connection management (psycopg async)
# ---------------------------------------------------------------------------

MAX_RETRY_ATTEMPTS = 6
MAX_TOTAL_WAIT_SECONDS = 60.0
BASE_DELAY_SECONDS = 1.0
READINESS_CHECK_TIMEOUT = 2.0


def _parse_dsn_for_logging(dsn: str) -> dict[str, str | None]:
    """
    Parse DSN and extract loggable components (no password).

    Returns dict with host, port, dbname, user, sslmode.
    """
    try:
        parsed = urlparse(dsn)
        query_params = parse_qs(parsed.query)
        sslmode = query_params.get("sslmode", ["not_set"])[0]

        return {
            "host": parsed.hostname,
            "port": str(parsed.port) if parsed.port else "5432",
            "dbname": parsed.path.lstrip("/") if parsed.path else None,
            "user": parsed.username,
            "sslmode": sslmode,
        }
    except ValueError as e:
        return {"error": str(e)}


def _ensure_sslmode(dsn: str) -> str:
    """
    Ensure sslmode=require is present in the DSN.

    If sslmode is not set, append it. If set to a weaker mode,
    upgrade to require.
    """
    parsed = urlparse(dsn)
    query_params = parse_qs(parsed.query)

    current_sslmode = query_params.get("sslmode", [None])[0]
    weak_modes = {"disable", "allow", "prefer"}

    if current_sslmode is None or current_sslmode in weak_modes:
        query_params["sslmode"] = ["require"]
        new_query = urlencode(query_params, doseq=True)
        if current_sslmode in weak_modes:
            logger.warning(f"Upgraded sslmode from '{current_sslmode}' to 'require' for security")
        return urlunparse(parsed._replace(query=new_query))

    return dsn


def _application_name() -> str:
    # Postgres rejects spaces/dots in application_name passed as an option
    safe_version = __version__.replace(".", "_").replace(" ", "_").replace("-", "_")
    return f"run_ingest_v{safe_version}"


async def init_db_pool(settings: Settings) -> Optional[AsyncConnectionPool]:
    """
    Initialize async PostgreSQL connection pool with retry logic.

    Never raises: on failure the health state records the error and /readyz
    reports 503, while the process stays up so logs remain accessible.

    Returns:
        The open pool, or None if it could not be opened.
    """
    global _db_pool

    if _db_pool is not None:
        return _db_pool

    if not settings.database_url:
        logger.warning("DATABASE_URL is not set; skipping DB init")
        _pool_health.last_error = "DATABASE_URL not configured"
        return None

    dsn = settings.database_url
    if settings.is_production:
        dsn = _ensure_sslmode(dsn)

    dsn_info = _parse_dsn_for_logging(dsn)
    logger.info(
        "Database connection parameters",
        host=dsn_info.get("host"),
        port=dsn_info.get("port"),
        dbname=dsn_info.get("dbname"),
        user=dsn_info.get("user"),
        sslmode=dsn_info.get("sslmode"),
    )

    start_time = time.monotonic()
    last_error: Exception | None = None

    for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
        _pool_health.init_attempts = attempt
        elapsed = time.monotonic() - start_time

        if elapsed >= MAX_TOTAL_WAIT_SECONDS:
            logger.error(
                f"DB pool init: time budget exhausted ({elapsed:.1f}s >= {MAX_TOTAL_WAIT_SECONDS}s)"
            )
            break

        pool: AsyncConnectionPool | None = None
        try:
            logger.info(f"DB pool init: attempt {attempt}/{MAX_RETRY_ATTEMPTS}")

            pool = AsyncConnectionPool(
                dsn,
                min_size=settings.DB_POOL_MIN_SIZE,
                max_size=settings.DB_POOL_MAX_SIZE,
                kwargs={"application_name": _application_name()},
                open=False,
            )
            await pool.open()

            async with pool.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT 1;")
                    result = await cur.fetchone()
                    if result is None or result[0] != 1:
                        raise RuntimeError("SELECT 1 did not return expected result")

            init_duration = (time.monotonic() - start_time) * 1000
            _db_pool = pool
            _pool_health.initialized = True
            _pool_health.healthy = True
            _pool_health.last_error = None
            _pool_health.init_duration_ms = init_duration
            _pool_health.last_check_at = time.monotonic()

            logger.info(
                f"Database pool initialized OK (attempt {attempt}, {init_duration:.0f}ms total)"
            )
            return pool

        except Exception as e:
            last_error = e
            _pool_health.last_error = f"{type(e).__name__}: {str(e)[:200]}"
            _pool_health.healthy = False
            if pool is not None:
                await pool.close()

            logger.warning(f"DB pool init attempt {attempt} failed: {type(e).__name__}: {e}")

            if attempt < MAX_RETRY_ATTEMPTS:
                delay = BASE_DELAY_SECONDS * (2 ** (attempt - 1))
                jitter = random.uniform(0, delay * 0.3)
                actual_delay = min(delay + jitter, MAX_TOTAL_WAIT_SECONDS - elapsed)

                if actual_delay > 0:
                    logger.info(f"DB pool init: waiting {actual_delay:.1f}s before retry")
                    await asyncio.sleep(actual_delay)

    total_elapsed = time.monotonic() - start_time
    _pool_health.initialized = False
    _pool_health.healthy = False
    _pool_health.init_duration_ms = total_elapsed * 1000

    logger.error(
        f"Failed to initialize database pool after {_pool_health.init_attempts} attempts "
        f"({total_elapsed:.1f}s): {last_error} - /readyz will return 503"
    )
    return None


async def ensure_schema(pool: AsyncConnectionPool) -> None:
    """Apply the idempotent DDL in one transaction."""
    async with pool.connection() as conn:
        async with conn.transaction():
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
    logger.info(f"Schema verified ({len(SCHEMA_STATEMENTS)} statements)")


async def check_db_ready(timeout: float = READINESS_CHECK_TIMEOUT) -> tuple[bool, str]:
    """
    Perform a readiness check on the database connection.

    Executes SELECT 1 with a timeout to verify the pool is healthy.

    Returns:
        Tuple of (is_ready, status_message)
    """
    pool = _db_pool
    if pool is None:
        return False, _pool_health.last_error or "Pool not initialized"

    async def _ping() -> int:
        async with pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1;")
                row = await cur.fetchone()
                return row[0] if row else 0

    try:
        start = time.monotonic()
        result = await asyncio.wait_for(_ping(), timeout=timeout)
        latency_ms = (time.monotonic() - start) * 1000
    except asyncio.TimeoutError:
        _pool_health.healthy = False
        _pool_health.last_error = f"Query timeout ({timeout}s)"
        return False, f"timeout ({timeout}s)"
    except Exception as e:
        _pool_health.healthy = False
        _pool_health.last_error = f"{type(e).__name__}: {str(e)[:100]}"
        return False, f"error: {type(e).__name__}"

    if result != 1:
        _pool_health.healthy = False
        _pool_health.last_error = f"SELECT 1 returned {result}"
        return False, f"unexpected_result: {result}"

    _pool_health.healthy = True
    _pool_health.last_error = None
    _pool_health.last_check_at = time.monotonic()
    return True, f"ok ({latency_ms:.0f}ms)"


async def close_db_pool() -> None:
    """
    Called from FastAPI shutdown.

    Closes the connection pool and resets health state.
    """
    global _db_pool
    if _db_pool is not None:
        logger.info("Closing PostgreSQL connection pool")
        await _db_pool.close()
        _db_pool = None
        _pool_health.initialized = False
        _pool_health.healthy = False

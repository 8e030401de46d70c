"""
Run Ingest Engine - Ingestion Orchestrator

Per-request state machine:

    UNAUTHENTICATED --resolve token--> AUTHENTICATED --validate--> VALIDATED
        |                                 |                          |
        v                                 v                          v
    Unauthorized (401)            BadRequest (400)          insert_run()
                                                              |        |
                                                          CREATED  DUPLICATE
                                                           (201)     (200)

A duplicate is a successful outcome flagged with duplicate=True; retrying
clients never need an error path for it. No retries happen here.

Cancellation: the store insert runs in its own task behind asyncio.shield, so
a client disconnect lets the write finish (keeping it atomic) and the result
is simply discarded.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ..core.errors import InternalFaultError, RunValidationError, UnauthorizedError
from ..core.logging import LogContext, Timer
from ..core.metrics import MetricsPort
from ..core.security import extract_bearer_token
from ..stores.base import InsertOutcome, NewRun, RejectedValueError, RunRepository, StoreError
from .credential_service import CredentialStore, ResolvedCredential
from .run_validator import RunValidator, build_new_run

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestResult:
    outcome: InsertOutcome
    project_id: str
    run_id: str
    environment: str
    summary: dict[str, Any]

    @property
    def duplicate(self) -> bool:
        return self.outcome is InsertOutcome.DUPLICATE


def _consume_task_result(task: "asyncio.Task[InsertOutcome]") -> None:
    """Log the outcome of an insert whose caller went away."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Detached run insert failed: {type(exc).__name__}: {exc}")


class IngestService:
    """Composes CredentialStore, RunValidator and RunRepository."""

    def __init__(
        self,
        credentials: CredentialStore,
        runs: RunRepository,
        validator: RunValidator,
        metrics: MetricsPort,
    ):
        self._credentials = credentials
        self._runs = runs
        self._validator = validator
        self._metrics = metrics

    async def authenticate(self, authorization: str | None) -> ResolvedCredential:
        """
        Resolve the Authorization header to a credential.

        Raises:
            UnauthorizedError: missing/malformed header or unknown token
            InternalFaultError: credential storage failed
        """
        try:
            raw_token = extract_bearer_token(authorization)
        except UnauthorizedError:
            self._metrics.increment("auth_failures")
            raise

        try:
            credential = await self._credentials.resolve(raw_token)
        except StoreError as e:
            logger.error(
                f"Token resolution failed: {e.message}",
                extra={"operation": e.operation or "resolve_credential"},
            )
            raise InternalFaultError("Authentication failed") from e

        if credential is None:
            self._metrics.increment("auth_failures")
            raise UnauthorizedError("Invalid token")

        return credential

    def validate(self, payload: Any) -> NewRun:
        """
        Raises:
            RunValidationError: with every violation found
        """
        errors = self._validator.validate(payload)
        if errors:
            self._metrics.increment("validation_failures")
            logger.warning(
                f"Run payload rejected with {len(errors)} error(s)",
                extra={"error_count": len(errors)},
            )
            raise RunValidationError(errors)
        return build_new_run(payload)

    async def _insert(self, project_id: str, run: NewRun) -> InsertOutcome:
        task = asyncio.ensure_future(self._runs.insert_run(project_id, run))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            logger.warning(
                "Client went away during run insert; letting the write complete",
                extra={"project_id": project_id, "run_id": run.run_id},
            )
            task.add_done_callback(_consume_task_result)
            raise

    async def ingest(self, authorization: str | None, payload: Any) -> IngestResult:
        """Run the full pipeline for one request."""
        credential = await self.authenticate(authorization)
        return await self.ingest_for(credential, payload)

    async def ingest_for(self, credential: ResolvedCredential, payload: Any) -> IngestResult:
        """
        Validate and store a run for an already-authenticated credential.

        The run is always attributed to credential.project_id; any project
        identifier inside the payload is ignored.
        """
        project_id = credential.project_id
        with Timer() as timer:
            with LogContext(project_id=project_id):
                run = self.validate(payload)

                with LogContext(run_id=run.run_id):
                    try:
                        outcome = await self._insert(project_id, run)
                    except RejectedValueError as e:
                        self._metrics.increment("validation_failures")
                        logger.warning(
                            f"Run insert refused by store: {e.message}",
                            extra={"project_id": project_id, "run_id": run.run_id},
                        )
                        raise RunValidationError(
                            ["run contains values that cannot be stored"]
                        ) from e
                    except StoreError as e:
                        logger.error(
                            f"Run insert failed: {e.message}",
                            extra={
                                "project_id": project_id,
                                "run_id": run.run_id,
                                "operation": e.operation or "insert_run",
                            },
                        )
                        raise InternalFaultError("Failed to ingest test run") from e

        if outcome is InsertOutcome.DUPLICATE:
            self._metrics.increment("duplicate_runs_rejected")
            logger.info(
                f"[DUPLICATE_RUN_REJECTED] project_id={project_id} run_id={run.run_id} "
                f"duration={timer.elapsed_ms}ms",
                extra={
                    "project_id": project_id,
                    "run_id": run.run_id,
                    "outcome": outcome.value,
                    "duration_ms": timer.elapsed_ms,
                },
            )
        else:
            self._metrics.increment("test_runs_ingested")
            logger.info(
                f"[TEST_RUN_INGESTED] project_id={project_id} run_id={run.run_id} "
                f"environment={run.environment} duration={timer.elapsed_ms}ms",
                extra={
                    "project_id": project_id,
                    "run_id": run.run_id,
                    "outcome": outcome.value,
                    "duration_ms": timer.elapsed_ms,
                },
            )

        return IngestResult(
            outcome=outcome,
            project_id=project_id,
            run_id=run.run_id,
            environment=run.environment,
            summary=run.summary,
        )

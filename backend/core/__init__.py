"""
Run Ingest Engine - Core Module

Configuration, logging, errors, metrics, middleware and security helpers.
"""

from .errors import (
    BadRequestError,
    ConflictError,
    ErrorResponse,
    IngestServiceError,
    InternalFaultError,
    NotFoundError,
    RunValidationError,
    ServiceUnavailableError,
    UnauthorizedError,
    setup_error_handlers,
)
from .metrics import InMemoryMetrics, MetricsPort, NullMetrics
from .middleware import RequestLoggingMiddleware, get_request_id
from .security import extract_bearer_token, require_admin_key

__all__ = [
    # Security
    "extract_bearer_token",
    "require_admin_key",
    # Middleware
    "RequestLoggingMiddleware",
    "get_request_id",
    # Metrics
    "InMemoryMetrics",
    "MetricsPort",
    "NullMetrics",
    # Errors
    "BadRequestError",
    "ConflictError",
    "ErrorResponse",
    "IngestServiceError",
    "InternalFaultError",
    "NotFoundError",
    "RunValidationError",
    "ServiceUnavailableError",
    "UnauthorizedError",
    "setup_error_handlers",
]

"""
In-memory metrics for lightweight observability.

Tracks named counters (requests, ingested runs, duplicates, ...) plus uptime.
Services receive a MetricsPort and call increment(name); they never reach for
a module global, so tests can pass their own recorder.

Thread-safe for single-worker deployments. For multi-worker deployments each
worker reports its own counts.
"""

from __future__ import annotations

import threading
import time
from typing import Protocol, TypedDict

# Counters exposed by GET /metrics even before their first increment
KNOWN_COUNTERS = (
    "requests_total",
    "errors",
    "orgs_created",
    "projects_created",
    "tokens_created",
    "test_runs_ingested",
    "duplicate_runs_rejected",
    "validation_failures",
    "auth_failures",
)


class MetricsPort(Protocol):
    """Fire-and-forget counter hook consumed by the services."""

    def increment(self, name: str, amount: int = 1) -> None: ...


class MetricsSnapshot(TypedDict):
    """Type for the GET /metrics payload."""

    uptime_seconds: int
    counters: dict[str, int]


class InMemoryMetrics:
    """Process-local counter registry."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._start_time = time.time()
        self._counters: dict[str, int] = {name: 0 for name in KNOWN_COUNTERS}

    def increment(self, name: str, amount: int = 1) -> None:
        """Increment a named counter, creating it on first use."""
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def get_uptime(self) -> int:
        """Return uptime in seconds since construction."""
        return int(time.time() - self._start_time)

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            counters = dict(self._counters)
        return MetricsSnapshot(uptime_seconds=self.get_uptime(), counters=counters)

    def reset_for_testing(self) -> None:
        """Reset all counters - only for use in tests."""
        with self._lock:
            self._counters = {name: 0 for name in KNOWN_COUNTERS}
            self._start_time = time.time()


class NullMetrics:
    """MetricsPort that drops every increment."""

    def increment(self, name: str, amount: int = 1) -> None:
        return None

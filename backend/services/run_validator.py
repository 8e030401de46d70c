"""
Run Ingest Engine - Run Payload Validator

Pure validation of inbound test-run payloads. No I/O, no side effects.

Every rule is checked and every violation is collected; a broken field never
stops traversal of its siblings, so a client sees all problems in a single
400 response. Messages start with the JSON path of the offending field
(e.g. ``test_suites[0].test_cases[2].status``).

run_id namespace rule:
    run_id must start with the configured prefix (default ``tr_``) and carry
    at least ``min_suffix_length`` non-blank characters after it.

run_id and environment may not hold control characters, and no string
inside a suite may hold U+0000 (Postgres TEXT/JSONB cannot store it).
Optional collections (``test_suites``, ``test_cases``, ``steps``) sent as
null are treated as absent.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ..stores.base import NewRun

DEFAULT_RUN_ID_PREFIX = "tr_"

TEST_CASE_STATUSES = ("passed", "failed", "flaky", "skipped")

SUMMARY_FIELDS = (
    "total_test_cases",
    "passed",
    "failed",
    "flaky",
    "skipped",
    "duration_ms",
)

SUITE_COUNT_FIELDS = (
    "total_cases",
    "passed",
    "failed",
    "duration_ms",
)


def is_non_negative_number(value: Any) -> bool:
    """
    True for int/float >= 0 within double range. Booleans are not numbers here.

    Integers too large to convert to a float count as out of range.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        as_float = float(value)
    except OverflowError:
        return False
    return math.isfinite(as_float) and value >= 0


def contains_nul(value: Any) -> bool:
    """True when any string (or object key) nested in value holds U+0000."""
    pending = [value]
    while pending:
        item = pending.pop()
        if isinstance(item, str):
            if "\x00" in item:
                return True
        elif isinstance(item, dict):
            pending.extend(item.keys())
            pending.extend(item.values())
        elif isinstance(item, list):
            pending.extend(item)
    return False


def _has_control_chars(text: str) -> bool:
    return any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in text)


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an ISO-8601 date-time string.

    Accepts a trailing ``Z``. Naive values are taken as UTC.
    Returns None when the value is not a parseable string.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _check_number(errors: list[str], container: dict[str, Any], key: str, path: str) -> None:
    if not is_non_negative_number(container.get(key)):
        errors.append(f"{path}.{key} must be a non-negative number")


def _validate_run_id(errors: list[str], run_id: Any, prefix: str, min_suffix_length: int) -> None:
    if not isinstance(run_id, str):
        errors.append("run_id is required and must be a string")
    elif not run_id.strip():
        errors.append("run_id cannot be empty")
    elif _has_control_chars(run_id):
        errors.append("run_id must not contain control characters")
    elif not run_id.startswith(prefix):
        errors.append(f'run_id must start with "{prefix}" prefix (e.g., {prefix}my_test_run_123)')
    elif len(run_id[len(prefix):].strip()) < min_suffix_length:
        errors.append(
            f'run_id must have at least {min_suffix_length} character(s) after "{prefix}" prefix'
        )


def _validate_summary(errors: list[str], summary: Any) -> None:
    if not isinstance(summary, dict):
        errors.append("summary is required and must be an object")
        return
    for key in SUMMARY_FIELDS:
        _check_number(errors, summary, key, "summary")


def _validate_test_case(errors: list[str], case: Any, path: str) -> None:
    if not isinstance(case, dict):
        errors.append(f"{path} must be an object")
        return

    name = case.get("name")
    if not isinstance(name, str) or not name.strip():
        errors.append(f"{path}.name is required and must be a non-empty string")

    if case.get("status") not in TEST_CASE_STATUSES:
        errors.append(f"{path}.status must be one of: {', '.join(TEST_CASE_STATUSES)}")

    _check_number(errors, case, "duration_ms", path)

    if "steps" in case and case["steps"] is not None and not isinstance(case["steps"], list):
        errors.append(f"{path}.steps must be an array")

    error_message = case.get("error_message")
    if error_message is not None and not isinstance(error_message, str):
        errors.append(f"{path}.error_message must be a string")


def _validate_suite(errors: list[str], suite: Any, path: str) -> None:
    if not isinstance(suite, dict):
        errors.append(f"{path} must be an object")
        return

    suite_name = suite.get("suite_name")
    if not isinstance(suite_name, str) or not suite_name.strip():
        errors.append(f"{path}.suite_name is required and must be a non-empty string")

    for key in SUITE_COUNT_FIELDS:
        _check_number(errors, suite, key, path)

    test_cases = suite.get("test_cases")
    if test_cases is None:
        return
    if not isinstance(test_cases, list):
        errors.append(f"{path}.test_cases must be an array")
        return
    for case_index, case in enumerate(test_cases):
        _validate_test_case(errors, case, f"{path}.test_cases[{case_index}]")


def validate_run_payload(
    payload: Any,
    *,
    run_id_prefix: str = DEFAULT_RUN_ID_PREFIX,
    min_suffix_length: int = 1,
) -> list[str]:
    """
    Validate a test-run payload.

    Returns:
        List of human-readable violations; empty when the payload is valid.
    """
    if not isinstance(payload, dict):
        return ["payload must be a JSON object"]

    errors: list[str] = []

    _validate_run_id(errors, payload.get("run_id"), run_id_prefix, min_suffix_length)

    environment = payload.get("environment")
    if not isinstance(environment, str):
        errors.append('environment is required and must be a string (e.g., "staging", "production")')
    elif not environment.strip():
        errors.append("environment cannot be empty")
    elif _has_control_chars(environment):
        errors.append("environment must not contain control characters")

    timestamp = payload.get("timestamp")
    if not isinstance(timestamp, str):
        errors.append("timestamp is required and must be a string")
    elif parse_timestamp(timestamp) is None:
        errors.append("timestamp must be a valid ISO 8601 date string")

    _validate_summary(errors, payload.get("summary"))

    test_suites = payload.get("test_suites")
    if test_suites is not None:
        if not isinstance(test_suites, list):
            errors.append("test_suites must be an array")
        else:
            for suite_index, suite in enumerate(test_suites):
                path = f"test_suites[{suite_index}]"
                _validate_suite(errors, suite, path)
                if isinstance(suite, dict) and contains_nul(suite):
                    errors.append(f"{path} must not contain NUL characters")

    return errors


def build_new_run(payload: dict[str, Any]) -> NewRun:
    """
    Convert a payload that passed validate_run_payload() into a NewRun.

    Only the documented fields are kept; unknown top-level keys are dropped.
    """
    timestamp = parse_timestamp(payload["timestamp"])
    if timestamp is None:
        raise ValueError("build_new_run() called with an unvalidated timestamp")
    return NewRun(
        run_id=payload["run_id"],
        environment=payload["environment"],
        timestamp=timestamp,
        summary={key: payload["summary"][key] for key in SUMMARY_FIELDS},
        test_suites=list(payload.get("test_suites") or []),
    )


@dataclass(frozen=True)
class RunValidator:
    """Validator bound to the configured run_id namespace."""

    run_id_prefix: str = DEFAULT_RUN_ID_PREFIX
    min_suffix_length: int = 1

    def validate(self, payload: Any) -> list[str]:
        return validate_run_payload(
            payload,
            run_id_prefix=self.run_id_prefix,
            min_suffix_length=self.min_suffix_length,
        )

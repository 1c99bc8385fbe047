"""Exception types for the query engine.

Hierarchy:

- QueryEngineError: base for every failure the engine knows how to report
- ClassificationFailure: no rule matched, or no template fits the match
- ValidationFailure: synthesized SQL was refused by the safety validator
- PrivilegedExecutionError: the safe-query entry point reported an error
- ExecutionRejected: neither execution path can safely answer the query

The engine converts each of these into a failed ``QueryOutcome``; none of
them is ever returned to a caller as a stack trace.
"""

from __future__ import annotations

from enum import Enum

__all__ = [
    "ErrorKind",
    "QueryEngineError",
    "ClassificationFailure",
    "ValidationFailure",
    "PrivilegedExecutionError",
    "ExecutionRejected",
    "DataStoreError",
]


class ErrorKind(str, Enum):
    """Error kinds recorded on a failed outcome."""

    CLASSIFICATION = "classification_failure"
    VALIDATION = "validation_failure"
    INFRASTRUCTURE_UNAVAILABLE = "infrastructure_unavailable"
    QUERY_NOT_RECOGNIZED = "query_not_recognized"
    INTERNAL = "internal_error"


class QueryEngineError(Exception):
    """Base exception for query engine errors."""

    kind: ErrorKind = ErrorKind.INTERNAL


class ClassificationFailure(QueryEngineError):
    """Raised when the question cannot be mapped onto a query template."""

    kind = ErrorKind.CLASSIFICATION


class ValidationFailure(QueryEngineError):
    """Raised when synthesized SQL violates the safety rules.

    Attributes:
        violations: Rule violations reported by the validator. These may
            quote the SQL and must stay in logs.
    """

    kind = ErrorKind.VALIDATION

    def __init__(self, violations: list[str], message: str | None = None) -> None:
        self.violations = list(violations)
        super().__init__(message or f"SQL failed validation: {'; '.join(self.violations)}")


class DataStoreError(Exception):
    """Raised by a data store when a call fails."""


class PrivilegedExecutionError(QueryEngineError):
    """Raised when the privileged safe-query entry point is unusable.

    Never surfaced to callers on its own: it only moves the gateway into the
    degraded path.
    """

    kind = ErrorKind.INFRASTRUCTURE_UNAVAILABLE


class ExecutionRejected(QueryEngineError):
    """Raised when the gateway ends in the rejected state.

    ``kind`` is either INFRASTRUCTURE_UNAVAILABLE (the query needs the
    privileged path, which failed) or QUERY_NOT_RECOGNIZED (the degraded
    path has no typed accessor for this shape).
    """

    def __init__(self, kind: ErrorKind, message: str, *, cause: str | None = None) -> None:
        self.kind = kind
        self.cause = cause
        super().__init__(message)

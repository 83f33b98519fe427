"""Core runtime error types.

Registration-time errors (bad pattern, duplicate name, invalid definition) are
fatal to that registration only. Expected "job absent" cases are reported as
``None``/``False`` by the manager; ``NotFoundError`` is raised only where a
caller explicitly asks for a job to exist. These exception types are mapped to
HTTP responses in the API layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable


class CronManagerError(Exception):
    """Base class for runtime errors."""


@dataclass(frozen=True)
class SchemaViolation:
    path: str
    message: str


class SchemaValidationError(CronManagerError):
    def __init__(self, kind: str, violations: Iterable[SchemaViolation]):
        self.kind = kind
        self.violations = list(violations)
        super().__init__(f"{kind} failed schema validation ({len(self.violations)} violation(s))")


class PatternError(CronManagerError):
    def __init__(self, pattern: str, message: str):
        self.pattern = pattern
        super().__init__(f"Invalid cron pattern {pattern!r}: {message}")


class NotFoundError(CronManagerError):
    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")


class ConflictError(CronManagerError):
    def __init__(self, message: str, details: Any | None = None):
        self.details = details
        super().__init__(message)


class DuplicateJobError(ConflictError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Job with name "{name}" already exists', details={"name": name})


class PolicyViolationError(CronManagerError):
    def __init__(self, message: str, details: Any | None = None):
        self.details = details
        super().__init__(message)


class HandlerError(CronManagerError):
    """A job handler raised. The original exception is chained as ``__cause__``."""

    def __init__(self, job_name: str, message: str):
        self.job_name = job_name
        self.message = message
        super().__init__(f"Job {job_name!r} failed: {message}")

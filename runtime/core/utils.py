"""Small utility helpers used across the core runtime."""

from __future__ import annotations

import importlib
import re
from datetime import datetime, timezone
from typing import Any, Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from errors import PolicyViolationError

_JOB_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")
MAX_JOB_NAME_LENGTH = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_rfc3339(dt: str) -> datetime:
    """Parse RFC3339-ish timestamps used in job documents.

    Python's datetime.fromisoformat does not accept trailing "Z" on older
    interpreters, so we normalize.
    """
    s = dt.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    parsed = datetime.fromisoformat(s)
    if parsed.tzinfo is None:
        raise ValueError("date-time must be timezone-aware (include Z or offset)")
    return parsed.astimezone(timezone.utc)


def format_rfc3339(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def load_timezone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone name. Raises KeyError for unknown names."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise KeyError(name) from e


def validate_job_name(name: str) -> None:
    if not isinstance(name, str) or not name:
        raise PolicyViolationError("Job name is required")
    if len(name) > MAX_JOB_NAME_LENGTH:
        raise PolicyViolationError(f"Job name must be {MAX_JOB_NAME_LENGTH} characters or less")
    if not _JOB_NAME_RE.match(name):
        raise PolicyViolationError("Job name can only contain letters, numbers, dashes, underscores, and dots")
    # Path traversal via job names ends up in URLs and log lines.
    if ".." in name:
        raise PolicyViolationError("Job name contains invalid characters")


def import_callable(ref: str) -> Callable[..., Any]:
    """Resolve a ``"package.module:attribute"`` reference to a callable."""
    module_name, sep, attr = ref.partition(":")
    if not sep or not module_name or not attr:
        raise PolicyViolationError(f"Invalid handler reference (expected 'module:attribute'): {ref}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise PolicyViolationError(f"Cannot import handler module {module_name!r}: {e}") from e
    target: Any = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise PolicyViolationError(f"Handler {ref!r} not found in module {module_name!r}") from e
    if not callable(target):
        raise PolicyViolationError(f"Handler {ref!r} is not callable")
    return target


def deep_get(d: dict[str, Any], path: list[str]) -> Any:
    cur: Any = d
    for k in path:
        if not isinstance(cur, dict) or k not in cur:
            raise KeyError("missing path: " + ".".join(path))
        cur = cur[k]
    return cur

"""Policy enforcement helpers for job execution options.

This module enforces the boundaries a JobDefinition declares for itself:
- run window (`start_at` / `stop_at`)
- run budget (`max_runs`)
- minimum spacing between scheduled runs (`interval_seconds`)

It does not run handlers. It only answers whether, and from which reference
instant, the next scheduled fire may happen.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from errors import PolicyViolationError
from registry.definitions import JobOptions

_EPSILON = timedelta(microseconds=1)


def enforce_job_options(options: JobOptions) -> None:
    """Reject option combinations that can never produce a sane schedule."""
    if options.max_runs is not None and options.max_runs < 1:
        raise PolicyViolationError(f"max_runs must be >= 1 (got {options.max_runs})")
    if options.interval_seconds < 0:
        raise PolicyViolationError(f"interval_seconds must be >= 0 (got {options.interval_seconds})")
    for label, value in (("start_at", options.start_at), ("stop_at", options.stop_at)):
        if value is not None and value.tzinfo is None:
            raise PolicyViolationError(f"{label} must be timezone-aware")
    if options.start_at and options.stop_at and options.stop_at <= options.start_at:
        raise PolicyViolationError("stop_at must be after start_at")


def schedule_reference(options: JobOptions, *, now: datetime, previous_run: datetime | None) -> datetime:
    """Instant after which the next scheduled fire is searched.

    The pattern evaluator returns matches strictly after its reference, so
    inclusive boundaries are shifted back by one microsecond.
    """
    reference = now
    if options.interval_seconds and previous_run is not None:
        reference = max(reference, previous_run + timedelta(seconds=options.interval_seconds) - _EPSILON)
    if options.start_at is not None:
        reference = max(reference, options.start_at - _EPSILON)
    return reference


def within_run_window(options: JobOptions, fire_at: datetime) -> bool:
    if options.start_at is not None and fire_at < options.start_at:
        return False
    if options.stop_at is not None and fire_at > options.stop_at:
        return False
    return True


def runs_exhausted(options: JobOptions, runs_started: int) -> bool:
    return options.max_runs is not None and runs_started >= options.max_runs

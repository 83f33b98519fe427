"""Execution history storage interfaces.

The runtime keeps no state across restarts. These interfaces define the
boundary for per-job execution history:
- ExecutionRecord documents (immutable once finalized, append-only)
- Aggregate statistics derived from the retained history

Concrete drivers live in `storage/` (in-memory bounded ring by default).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from utils import format_rfc3339


@dataclass(frozen=True)
class ExecutionRecord:
    job_name: str
    start_time: datetime
    end_time: datetime | None = None
    duration_ms: int | None = None
    success: bool = False
    error: str | None = None
    manual: bool = False

    @property
    def pending(self) -> bool:
        return self.end_time is None

    def finish(self, *, end_time: datetime, error: str | None = None) -> "ExecutionRecord":
        """Return the finalized copy of a pending record."""
        duration = int(round((end_time - self.start_time).total_seconds() * 1000))
        return replace(self, end_time=end_time, duration_ms=max(duration, 0), success=error is None, error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_name": self.job_name,
            "start_time": format_rfc3339(self.start_time),
            "end_time": format_rfc3339(self.end_time),
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error,
            "manual": self.manual,
        }


@dataclass(frozen=True)
class ExecutionStats:
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    average_duration_ms: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total_runs": self.total_runs,
            "successful_runs": self.successful_runs,
            "failed_runs": self.failed_runs,
            "average_duration_ms": self.average_duration_ms,
        }


class ExecutionRecorder(ABC):
    @abstractmethod
    def record(self, job_name: str, record: ExecutionRecord) -> None:
        """Append a finalized record, evicting the oldest one beyond the cap."""

    @abstractmethod
    def query(self, job_name: str, limit: int | None = None) -> list[ExecutionRecord]:
        """Most recent records first. Unknown jobs yield an empty list."""

    @abstractmethod
    def stats(self, job_name: str) -> ExecutionStats:
        """Aggregate over all retained history for a job."""

    @abstractmethod
    def all_stats(self) -> ExecutionStats:
        """Aggregate over all retained history for every job."""

    @abstractmethod
    def drop(self, job_name: str) -> None:
        """Forget a job's history."""

    @abstractmethod
    def clear(self) -> None:
        """Forget every job's history."""

"""Job definitions supplied at registration.

A JobDefinition is immutable configuration: it names the job, its schedule
and its handler. Runtime state lives in `executor.engine.JobRuntime`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

from utils import format_rfc3339, parse_rfc3339, validate_job_name

if TYPE_CHECKING:
    from executor.engine import JobRuntime

Handler = Callable[["JobRuntime"], Union[None, Awaitable[None], Any]]


@dataclass(frozen=True)
class JobOptions:
    protect: bool = True
    max_runs: int | None = None
    catch: bool = True
    start_at: datetime | None = None
    stop_at: datetime | None = None
    interval_seconds: int = 0

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "JobOptions":
        raw = raw or {}
        start_at = raw.get("start_at")
        stop_at = raw.get("stop_at")
        max_runs = raw.get("max_runs")
        return cls(
            protect=bool(raw.get("protect", True)),
            max_runs=None if max_runs is None else int(max_runs),
            catch=bool(raw.get("catch", True)),
            start_at=_as_datetime(start_at),
            stop_at=_as_datetime(stop_at),
            interval_seconds=int(raw.get("interval_seconds", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "protect": self.protect,
            "max_runs": self.max_runs,
            "catch": self.catch,
            "start_at": format_rfc3339(self.start_at),
            "stop_at": format_rfc3339(self.stop_at),
            "interval_seconds": self.interval_seconds,
        }


def _as_datetime(v: Any) -> datetime | None:
    if v is None:
        return None
    if isinstance(v, datetime):
        return v
    # PyYAML hands back timestamps as datetime already; strings come from JSON.
    return parse_rfc3339(str(v))


@dataclass(frozen=True)
class JobDefinition:
    name: str
    pattern: str
    handler: Handler
    description: str = ""
    timezone: str | None = None
    enabled: bool = True
    options: JobOptions = field(default_factory=JobOptions)

    def __post_init__(self) -> None:
        validate_job_name(self.name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "pattern": self.pattern,
            "timezone": self.timezone,
            "enabled": self.enabled,
            "options": self.options.to_dict(),
        }

"""In-memory registry of scheduled jobs.

The CronManager owns every registered job: its immutable definition, its
runtime (state machine + timer) and, through the recorder, its execution
history. There is no module-level instance; callers construct one manager and
pass it around.

Rules:
- Job names are unique; a duplicate registration fails and leaves the
  existing job untouched.
- Patterns and options are validated before anything is stored, so a failed
  registration leaves no trace.
- Control operations on unknown names return False instead of raising.
- `stop` removes the job; its retained history still counts toward manager
  totals until the name is registered again or `stop_all` runs.
- Each registration records through its own handle. A run that finishes after
  its name was registered again, or after `stop_all`, is not recorded.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from errors import DuplicateJobError, NotFoundError, PolicyViolationError
from executor.engine import Clock, JobRuntime
from executor.policy import enforce_job_options
from executor.state_machine import JobState
from registry.definitions import JobDefinition
from scheduler.pattern import CronPattern
from storage.interfaces import ExecutionRecord, ExecutionRecorder, ExecutionStats
from storage.memory import DEFAULT_MAX_EXECUTION_LOGS, InMemoryExecutionRecorder
from utils import format_rfc3339, load_timezone, utcnow

logger = logging.getLogger(__name__)

RECENT_EXECUTIONS_LIMIT = 10


@dataclass(frozen=True)
class JobInfo:
    name: str
    description: str
    pattern: str
    timezone: str
    enabled: bool
    status: JobState
    next_run: datetime | None
    previous_run: datetime | None
    current_run: datetime | None
    is_busy: bool
    executions: list[ExecutionRecord]
    stats: ExecutionStats

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "pattern": self.pattern,
            "timezone": self.timezone,
            "enabled": self.enabled,
            "status": self.status.value,
            "next_run": format_rfc3339(self.next_run),
            "previous_run": format_rfc3339(self.previous_run),
            "current_run": format_rfc3339(self.current_run),
            "is_busy": self.is_busy,
            "executions": [e.to_dict() for e in self.executions],
            "stats": self.stats.to_dict(),
        }


@dataclass(frozen=True)
class ManagerStats:
    total_jobs: int
    idle_jobs: int
    running_jobs: int
    paused_jobs: int
    stopped_jobs: int
    total_executions: int
    successful_executions: int
    failed_executions: int

    @property
    def active_jobs(self) -> int:
        return self.idle_jobs + self.running_jobs

    def to_dict(self) -> dict[str, int]:
        return {
            "total_jobs": self.total_jobs,
            "active_jobs": self.active_jobs,
            "idle_jobs": self.idle_jobs,
            "running_jobs": self.running_jobs,
            "paused_jobs": self.paused_jobs,
            "stopped_jobs": self.stopped_jobs,
            "total_executions": self.total_executions,
            "successful_executions": self.successful_executions,
            "failed_executions": self.failed_executions,
        }


class _RegistrationRecorder(ExecutionRecorder):
    """Recorder handle given to one registration's runtime.

    Reads go straight to the shared recorder; writes are accepted only while
    the registration still owns its name.
    """

    def __init__(self, manager: "CronManager", token: int):
        self._manager = manager
        self._token = token

    def record(self, job_name: str, record: ExecutionRecord) -> None:
        self._manager._record_owned(self._token, job_name, record)

    def query(self, job_name: str, limit: int | None = None) -> list[ExecutionRecord]:
        return self._manager._recorder.query(job_name, limit)

    def stats(self, job_name: str) -> ExecutionStats:
        return self._manager._recorder.stats(job_name)

    def all_stats(self) -> ExecutionStats:
        return self._manager._recorder.all_stats()

    def drop(self, job_name: str) -> None:
        self._manager._recorder.drop(job_name)

    def clear(self) -> None:
        self._manager._recorder.clear()


@dataclass(frozen=True)
class _Entry:
    definition: JobDefinition
    runtime: JobRuntime


class CronManager:
    def __init__(
        self,
        *,
        default_timezone: str = "UTC",
        max_execution_logs: int = DEFAULT_MAX_EXECUTION_LOGS,
        recorder: ExecutionRecorder | None = None,
        clock: Clock = utcnow,
        max_sleep_seconds: float = 60.0,
    ):
        try:
            load_timezone(default_timezone)
        except KeyError:
            raise PolicyViolationError(f"Unknown default timezone: {default_timezone}") from None
        self.default_timezone = default_timezone
        self._recorder = recorder if recorder is not None else InMemoryExecutionRecorder(max_execution_logs)
        self._clock = clock
        self._max_sleep_seconds = max_sleep_seconds
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}
        # name -> token of the registration allowed to record under that name
        self._owners: dict[str, int] = {}
        self._tokens = itertools.count(1)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def job_names(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    # -- registration -------------------------------------------------------

    def register(self, definition: JobDefinition) -> JobRuntime:
        """Validate, store and start a job. Raises PatternError, PolicyViolationError or DuplicateJobError."""
        timezone_name = definition.timezone or self.default_timezone
        pattern = CronPattern(definition.pattern, timezone_name)
        enforce_job_options(definition.options)

        with self._lock:
            if definition.name in self._entries:
                raise DuplicateJobError(definition.name)
            token = next(self._tokens)
            runtime = JobRuntime(
                definition,
                pattern,
                _RegistrationRecorder(self, token),
                clock=self._clock,
                max_sleep_seconds=self._max_sleep_seconds,
            )
            # A reused name starts with an empty history.
            self._recorder.drop(definition.name)
            self._owners[definition.name] = token
            self._entries[definition.name] = _Entry(definition=definition, runtime=runtime)
            runtime.start()

        logger.info(
            "job_registered",
            extra={
                "event": "job_registered",
                "job": definition.name,
                "pattern": definition.pattern,
                "state": runtime.state.value,
            },
        )
        return runtime

    def register_all(self, definitions: Iterable[JobDefinition]) -> list[JobRuntime]:
        """Register in order; stops at the first failure, keeping earlier registrations."""
        return [self.register(d) for d in definitions]

    # -- queries ------------------------------------------------------------

    def _entry(self, name: str) -> _Entry | None:
        with self._lock:
            return self._entries.get(name)

    def get_runtime(self, name: str) -> JobRuntime | None:
        entry = self._entry(name)
        return entry.runtime if entry else None

    def get_job(self, name: str) -> JobInfo | None:
        entry = self._entry(name)
        if entry is None:
            return None
        definition = entry.definition
        view = entry.runtime.snapshot()
        return JobInfo(
            name=definition.name,
            description=definition.description,
            pattern=definition.pattern,
            timezone=entry.runtime.pattern.timezone,
            enabled=definition.enabled,
            status=view.state,
            next_run=view.next_run,
            previous_run=view.previous_run,
            current_run=view.current_run,
            is_busy=view.is_busy,
            executions=self._recorder.query(name, RECENT_EXECUTIONS_LIMIT),
            stats=self._recorder.stats(name),
        )

    def require_job(self, name: str) -> JobInfo:
        info = self.get_job(name)
        if info is None:
            raise NotFoundError("Job", name)
        return info

    def get_all_jobs(self) -> list[JobInfo]:
        jobs = (self.get_job(name) for name in self.job_names())
        # A job stopped between listing and lookup is simply left out.
        return [j for j in jobs if j is not None]

    def get_stats(self) -> ManagerStats:
        jobs = self.get_all_jobs()
        counts = {state: 0 for state in JobState}
        for job in jobs:
            counts[job.status] += 1
        totals = self._recorder.all_stats()
        return ManagerStats(
            total_jobs=len(jobs),
            idle_jobs=counts[JobState.IDLE],
            running_jobs=counts[JobState.RUNNING],
            paused_jobs=counts[JobState.PAUSED],
            stopped_jobs=counts[JobState.STOPPED],
            total_executions=totals.total_runs,
            successful_executions=totals.successful_runs,
            failed_executions=totals.failed_runs,
        )

    # -- control ------------------------------------------------------------

    def _runtime_or_log(self, name: str, action: str) -> JobRuntime | None:
        runtime = self.get_runtime(name)
        if runtime is None:
            logger.warning("job_not_found", extra={"event": "job_not_found", "job": name, "action": action})
        return runtime

    def trigger(self, name: str) -> bool:
        """Run a job's handler now in the calling thread.

        False if the job is unknown, stopped, or skipped by overlap protection.
        Raises HandlerError if the handler fails and the job's `catch` is off.
        """
        runtime = self._runtime_or_log(name, "trigger")
        if runtime is None:
            return False
        outcome = runtime.trigger()
        if outcome.started:
            logger.info("job_triggered", extra={"event": "job_triggered", "job": name})
        return outcome.started

    def pause(self, name: str) -> bool:
        runtime = self._runtime_or_log(name, "pause")
        return runtime.pause() if runtime else False

    def resume(self, name: str) -> bool:
        runtime = self._runtime_or_log(name, "resume")
        return runtime.resume() if runtime else False

    def stop(self, name: str) -> bool:
        with self._lock:
            entry = self._entries.pop(name, None)
        if entry is None:
            logger.warning("job_not_found", extra={"event": "job_not_found", "job": name, "action": "stop"})
            return False
        entry.runtime.stop()
        return True

    def stop_all(self) -> None:
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
            self._owners.clear()
            self._recorder.clear()
        for entry in entries:
            entry.runtime.stop()
        logger.info("manager_stopped", extra={"event": "manager_stopped", "jobs": len(entries)})

    def _record_owned(self, token: int, job_name: str, record: ExecutionRecord) -> None:
        with self._lock:
            if self._owners.get(job_name) != token:
                logger.info(
                    "execution_discarded",
                    extra={"event": "execution_discarded", "job": job_name, "start_time": format_rfc3339(record.start_time)},
                )
                return
            self._recorder.record(job_name, record)

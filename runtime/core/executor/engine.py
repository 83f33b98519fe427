"""Per-job runtime: lifecycle state, overlap protection and the execution wrapper.

A JobRuntime:
- Tracks the lifecycle state (idle/running/paused/stopped) and fire times
- Starts executions, either from its timer (scheduled) or from a manual trigger
- Refuses a start while a prior execution is in flight when `protect` is on
- Records every started execution, success or failure, in the recorder

All state checks and writes happen under one condition lock, so a pause or
stop that lands between "fire is due" and "handler starts" wins. Handlers run
outside the lock. There is no handler timeout: a hung handler keeps its job
busy until it returns.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from errors import HandlerError
from executor.policy import runs_exhausted, schedule_reference, within_run_window
from executor.state_machine import JobState, apply_transition, can_transition
from registry.definitions import JobDefinition
from scheduler.pattern import CronPattern
from scheduler.runner import TimerLoop
from storage.interfaces import ExecutionRecord, ExecutionRecorder
from utils import format_rfc3339, utcnow

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of one pass through the execution wrapper."""

    started: bool
    record: ExecutionRecord | None = None
    error: Exception | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


_SKIPPED = ExecutionOutcome(started=False)


@dataclass(frozen=True)
class RuntimeView:
    state: JobState
    next_run: datetime | None
    previous_run: datetime | None
    current_run: datetime | None
    is_busy: bool
    current_execution: ExecutionRecord | None = None


def _error_message(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


async def _drive(awaitable: Any) -> Any:
    return await awaitable


class JobRuntime:
    def __init__(
        self,
        definition: JobDefinition,
        pattern: CronPattern,
        recorder: ExecutionRecorder,
        *,
        clock: Clock = utcnow,
        max_sleep_seconds: float = 60.0,
    ):
        self.definition = definition
        self.pattern = pattern
        self._recorder = recorder
        self._clock = clock
        self._cond = threading.Condition()

        self._state = JobState.IDLE if definition.enabled else JobState.PAUSED
        self._in_flight = 0
        self._runs_started = 0
        self._previous_run: datetime | None = None
        self._current_run: datetime | None = None
        self._current_execution: ExecutionRecord | None = None
        self._next_run: datetime | None = None
        if self._state is JobState.IDLE:
            self._next_run = self._compute_next(self._clock())

        self._timer = TimerLoop(self, max_sleep_seconds=max_sleep_seconds)

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def state(self) -> JobState:
        with self._cond:
            return self._state

    @property
    def next_run(self) -> datetime | None:
        with self._cond:
            return self._next_run

    @property
    def previous_run(self) -> datetime | None:
        with self._cond:
            return self._previous_run

    @property
    def current_run(self) -> datetime | None:
        with self._cond:
            return self._current_run

    @property
    def is_busy(self) -> bool:
        with self._cond:
            return self._in_flight > 0

    @property
    def runs_started(self) -> int:
        with self._cond:
            return self._runs_started

    def snapshot(self) -> RuntimeView:
        """Consistent view of the mutable runtime fields."""
        with self._cond:
            return RuntimeView(
                state=self._state,
                next_run=self._next_run,
                previous_run=self._previous_run,
                current_run=self._current_run,
                is_busy=self._in_flight > 0,
                current_execution=self._current_execution,
            )

    # -- scheduling ---------------------------------------------------------

    def start(self) -> None:
        self._timer.start()

    def join(self, timeout: float | None = None) -> None:
        self._timer.join(timeout)

    def _compute_next(self, now: datetime, *, fired_at: datetime | None = None) -> datetime | None:
        options = self.definition.options
        previous = fired_at if fired_at is not None else self._previous_run
        reference = schedule_reference(options, now=now, previous_run=previous)
        nxt = self.pattern.next_after(reference)
        if nxt is None or not within_run_window(options, nxt):
            return None
        return nxt

    def await_fire(self, max_sleep_seconds: float) -> bool:
        """Block until a scheduled fire is due (True) or the runtime stopped (False)."""
        with self._cond:
            while True:
                if self._state is JobState.STOPPED:
                    return False
                if self._state is JobState.PAUSED:
                    self._cond.wait(max_sleep_seconds)
                    continue
                if self._next_run is None:
                    self._state = apply_transition(self._state, JobState.STOPPED)
                    self._cond.notify_all()
                    logger.info("job_schedule_exhausted", extra={"event": "job_schedule_exhausted", "job": self.name})
                    return False

                now = self._clock()
                delay = (self._next_run - now).total_seconds()
                if delay <= 0:
                    # Spacing counts from the fire being claimed here.
                    self._next_run = self._compute_next(now, fired_at=now)
                    return True
                self._cond.wait(min(delay, max_sleep_seconds))

    def fire(self) -> threading.Thread | None:
        """Start a scheduled execution on a worker thread; None if it was skipped."""
        pending = self._begin(manual=False)
        if pending is None:
            return None
        worker = threading.Thread(target=self._run, args=(pending,), name=f"cron-job:{self.name}", daemon=True)
        worker.start()
        return worker

    # -- execution wrapper --------------------------------------------------

    def _begin(self, *, manual: bool) -> ExecutionRecord | None:
        with self._cond:
            if self._state is JobState.STOPPED:
                return None
            if self._state is JobState.PAUSED and not manual:
                return None
            if self.definition.options.protect and self._in_flight > 0:
                logger.warning(
                    "job_skipped_overlap",
                    extra={"event": "job_skipped_overlap", "job": self.name, "code": "OVERLAP_PROTECTED"},
                )
                return None

            start = self._clock()
            self._in_flight += 1
            self._previous_run = start
            self._current_run = start
            if self._state is JobState.IDLE:
                self._state = apply_transition(self._state, JobState.RUNNING)

            if not manual:
                self._runs_started += 1
                if runs_exhausted(self.definition.options, self._runs_started):
                    self._state = apply_transition(self._state, JobState.STOPPED)
                    self._next_run = None
                    logger.info("job_max_runs_reached", extra={"event": "job_max_runs_reached", "job": self.name})

            pending = ExecutionRecord(job_name=self.name, start_time=start, manual=manual)
            self._current_execution = pending
            self._cond.notify_all()

        logger.info(
            "job_started",
            extra={"event": "job_started", "job": self.name, "manual": manual, "start_time": format_rfc3339(start)},
        )
        return pending

    def _invoke_handler(self) -> None:
        result = self.definition.handler(self)
        if inspect.isawaitable(result):
            asyncio.run(_drive(result))

    def _run(self, pending: ExecutionRecord) -> ExecutionOutcome:
        error: Exception | None = None
        try:
            try:
                self._invoke_handler()
            except Exception as exc:
                error = exc
            finished = pending.finish(end_time=self._clock(), error=None if error is None else _error_message(error))
            self._recorder.record(self.name, finished)
        finally:
            self._end_run()

        if error is None:
            logger.info(
                "job_completed",
                extra={"event": "job_completed", "job": self.name, "duration_ms": finished.duration_ms},
            )
        else:
            logger.error(
                "job_failed",
                extra={"event": "job_failed", "job": self.name, "duration_ms": finished.duration_ms, "error": finished.error},
                exc_info=error,
            )
        return ExecutionOutcome(started=True, record=finished, error=error)

    def _end_run(self) -> None:
        with self._cond:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._current_run = None
                self._current_execution = None
                if self._state is JobState.RUNNING:
                    self._state = apply_transition(self._state, JobState.IDLE)
            self._cond.notify_all()

    def execute(self, *, manual: bool = False) -> ExecutionOutcome:
        """Run one execution in the calling thread. Handler errors are returned, not raised."""
        pending = self._begin(manual=manual)
        if pending is None:
            return _SKIPPED
        return self._run(pending)

    # -- control plane ------------------------------------------------------

    def trigger(self) -> ExecutionOutcome:
        """Run the handler now without touching the schedule.

        Raises HandlerError when the handler fails and the job's `catch`
        option is off; the failure is recorded either way.
        """
        outcome = self.execute(manual=True)
        if outcome.error is not None and not self.definition.options.catch:
            raise HandlerError(self.name, _error_message(outcome.error)) from outcome.error
        return outcome

    def pause(self) -> bool:
        with self._cond:
            if not can_transition(self._state, JobState.PAUSED):
                return False
            self._state = JobState.PAUSED
            self._next_run = None
            self._cond.notify_all()
        logger.info("job_paused", extra={"event": "job_paused", "job": self.name})
        return True

    def resume(self) -> bool:
        with self._cond:
            if self._state is not JobState.PAUSED:
                return False
            self._state = apply_transition(self._state, JobState.RUNNING if self._in_flight else JobState.IDLE)
            self._next_run = self._compute_next(self._clock())
            self._cond.notify_all()
        logger.info("job_resumed", extra={"event": "job_resumed", "job": self.name})
        return True

    def stop(self) -> bool:
        with self._cond:
            if not can_transition(self._state, JobState.STOPPED):
                return False
            self._state = JobState.STOPPED
            self._next_run = None
            self._cond.notify_all()
        logger.info("job_stopped", extra={"event": "job_stopped", "job": self.name})
        return True

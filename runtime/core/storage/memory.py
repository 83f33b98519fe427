"""In-memory execution history (default driver).

Each job keeps a bounded ring of finalized records, most recent first. The
ring is a `deque(maxlen=cap)` filled with `appendleft`, so the oldest record
falls off the right end on overflow.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Iterable

from storage.interfaces import ExecutionRecord, ExecutionRecorder, ExecutionStats

DEFAULT_MAX_EXECUTION_LOGS = 100


def _aggregate(records: Iterable[ExecutionRecord]) -> ExecutionStats:
    total = successful = 0
    duration_sum = 0
    for rec in records:
        total += 1
        if rec.success:
            successful += 1
        duration_sum += rec.duration_ms or 0
    average = round(duration_sum / total) if total else 0
    return ExecutionStats(
        total_runs=total,
        successful_runs=successful,
        failed_runs=total - successful,
        average_duration_ms=int(average),
    )


class InMemoryExecutionRecorder(ExecutionRecorder):
    def __init__(self, max_execution_logs: int = DEFAULT_MAX_EXECUTION_LOGS):
        if max_execution_logs < 1:
            raise ValueError("max_execution_logs must be >= 1")
        self.max_execution_logs = max_execution_logs
        self._lock = threading.Lock()
        self._histories: dict[str, deque[ExecutionRecord]] = {}

    def record(self, job_name: str, record: ExecutionRecord) -> None:
        if record.pending:
            raise ValueError("only finalized records can be stored")
        with self._lock:
            history = self._histories.setdefault(job_name, deque(maxlen=self.max_execution_logs))
            history.appendleft(record)

    def query(self, job_name: str, limit: int | None = None) -> list[ExecutionRecord]:
        with self._lock:
            history = self._histories.get(job_name)
            if not history:
                return []
            records = list(history)
        if limit is None:
            return records
        return records[: max(limit, 0)]

    def stats(self, job_name: str) -> ExecutionStats:
        return _aggregate(self.query(job_name))

    def all_stats(self) -> ExecutionStats:
        with self._lock:
            records = [rec for history in self._histories.values() for rec in history]
        return _aggregate(records)

    def drop(self, job_name: str) -> None:
        with self._lock:
            self._histories.pop(job_name, None)

    def clear(self) -> None:
        with self._lock:
            self._histories.clear()

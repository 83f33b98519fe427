"""Timer loop: one daemon thread per job runtime.

The loop keeps no schedule of its own. It asks the runtime to block until the
next fire is due (the runtime wakes it early on pause, resume and stop) and
then hands the fire back to the runtime, which starts the execution on a
worker thread. Timers of different jobs never wait on each other.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from executor.engine import JobRuntime

logger = logging.getLogger(__name__)


class TimerLoop:
    def __init__(self, runtime: "JobRuntime", *, max_sleep_seconds: float = 60.0):
        # Bounded sleeps re-read the clock, so wall-clock jumps are picked up.
        if max_sleep_seconds <= 0:
            raise ValueError("max_sleep_seconds must be > 0")
        self._runtime = runtime
        self.max_sleep_seconds = max_sleep_seconds
        self._thread: threading.Thread | None = None

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self.run_forever, name=f"cron-timer:{self._runtime.name}", daemon=True)
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run_forever(self) -> None:
        logger.debug("timer_started", extra={"event": "timer_started", "job": self._runtime.name})
        while self._runtime.await_fire(self.max_sleep_seconds):
            self._runtime.fire()
        logger.debug("timer_exited", extra={"event": "timer_exited", "job": self._runtime.name})

"""Example job: logs the current time every minute."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from registry.definitions import JobDefinition
from utils import format_rfc3339, utcnow

if TYPE_CHECKING:
    from executor.engine import JobRuntime

logger = logging.getLogger(__name__)


def log_current_time(job: "JobRuntime") -> None:
    logger.info(
        "example_cron_tick",
        extra={"event": "example_cron_tick", "job": job.name, "start_time": format_rfc3339(utcnow())},
    )


example_cron_job = JobDefinition(
    name="example-cron-job",
    description="Logs the current time every minute",
    pattern="*/1 * * * *",
    handler=log_current_time,
)

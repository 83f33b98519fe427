"""Example async job used by the declarative definitions in `jobs/definitions/`.

Reports how far the job is from its next scheduled fire, which shows that a
handler can inspect its own runtime.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from utils import format_rfc3339

if TYPE_CHECKING:
    from executor.engine import JobRuntime

logger = logging.getLogger(__name__)


async def beat(job: "JobRuntime") -> None:
    await asyncio.sleep(0)
    logger.info(
        "heartbeat",
        extra={"event": "heartbeat", "job": job.name, "next_run": format_rfc3339(job.next_run)},
    )

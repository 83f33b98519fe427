"""Logging helpers.

The runtime uses Python logging with a JSON formatter so job events can be
grepped and shipped as structured lines.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

_STRUCTURED_EXTRAS = (
    "event",
    "job",
    "action",
    "state",
    "code",
    "pattern",
    "manual",
    "start_time",
    "next_run",
    "duration_ms",
    "error",
    "jobs",
)


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }

        # Common structured extras (when provided).
        for k in _STRUCTURED_EXTRAS:
            v = getattr(record, k, None)
            if v is not None:
                base[k] = v

        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(base, ensure_ascii=True, sort_keys=True, default=str)

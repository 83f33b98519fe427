#!/usr/bin/env python3
"""Print the next fire times of a cron pattern.

Usage: next_fires.py PATTERN [TIMEZONE] [COUNT]
"""
from __future__ import annotations

import sys
from pathlib import Path


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def main(argv: list[str]) -> int:
    repo = _repo_root()
    sys.path.insert(0, str(repo / "runtime" / "core"))

    from errors import PatternError
    from scheduler.pattern import CronPattern

    if not argv:
        print(__doc__.strip())
        return 2

    pattern_src = argv[0]
    timezone_name = argv[1] if len(argv) > 1 else "UTC"
    count = int(argv[2]) if len(argv) > 2 else 5

    try:
        pattern = CronPattern(pattern_src, timezone_name)
    except PatternError as e:
        print(f"pattern=INVALID reason={e}")
        return 1

    print(f"pattern={pattern.source} expanded={pattern.expanded} timezone={pattern.timezone}")
    runs = pattern.next_runs(count)
    if not runs:
        print("next=NONE")
    for run in runs:
        print(f"next={run.isoformat()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))

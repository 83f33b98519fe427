"""Cron pattern parsing and next-fire-time evaluation.

Pattern format (seconds optional; five fields imply second=0):

    ┌────────────── second (0-59, optional)
    │ ┌──────────── minute (0-59)
    │ │ ┌────────── hour (0-23)
    │ │ │ ┌──────── day of month (1-31)
    │ │ │ │ ┌────── month (1-12 or JAN-DEC)
    │ │ │ │ │ ┌──── day of week (0-7 or SUN-SAT, 0 and 7 are Sunday)
    * * * * * *

Each field accepts `*`, `?`, a value, a range `a-b`, a step `*/n`, `a-b/n` or
`a/n`, and comma-separated lists of those.

Fields are checked and normalized here; croniter does the expansion and the
wall-clock search. Timezone handling stays on this side: croniter walks naive
wall-clock time in one UTC offset at a time, and every offset change found on
the way restarts the walk from the transition instant.

Rules:
- Day-of-month and day-of-week are OR-combined when both are restricted. A
  field is unrestricted when it starts with `*` or `?` (so `*/2` does not
  switch on OR semantics).
- Wall-clock times skipped by a DST transition never fire.
- Wall-clock times repeated by a DST transition fire once, at their first
  occurrence, when the hour field is restricted. Patterns with an unrestricted
  hour keep firing through the repeated hour.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from croniter import CroniterBadCronError, CroniterBadDateError, croniter

from errors import PatternError
from utils import load_timezone, utcnow

MACROS: dict[str, str] = {
    "@yearly": "0 0 0 1 1 *",
    "@annually": "0 0 0 1 1 *",
    "@monthly": "0 0 0 1 * *",
    "@weekly": "0 0 0 * * 0",
    "@daily": "0 0 0 * * *",
    "@midnight": "0 0 0 * * *",
    "@hourly": "0 0 * * * *",
}

_MONTH_NAMES = {name: i for i, name in enumerate(
    ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"), start=1
)}
_DAY_NAMES = {name: i for i, name in enumerate(("sun", "mon", "tue", "wed", "thu", "fri", "sat"))}

# A 29 Feb pattern can be up to eight years away (e.g. 2096 -> 2104).
_SEARCH_YEARS = 9

# Leap year start, so day/month combinations are checked against 29 Feb too.
_PROBE_BASE = datetime(2000, 1, 1)

_TOKEN_RE = re.compile(
    r"^(?:(?P<any>[*?])|(?P<lo>[0-9]+|[a-z]+)(?:-(?P<hi>[0-9]+|[a-z]+))?)(?:/(?P<step>[0-9]+))?$"
)

_ONE_SECOND = timedelta(seconds=1)


@dataclass(frozen=True)
class _FieldSpec:
    name: str
    low: int
    high: int
    names: dict[str, int] | None = None


_FIELDS = (
    _FieldSpec("second", 0, 59),
    _FieldSpec("minute", 0, 59),
    _FieldSpec("hour", 0, 23),
    _FieldSpec("day", 1, 31),
    _FieldSpec("month", 1, 12, _MONTH_NAMES),
    _FieldSpec("weekday", 0, 7, _DAY_NAMES),
)


def expand_macro(pattern: str) -> str:
    """Return the six-field equivalent of a macro, or the pattern unchanged."""
    s = pattern.strip()
    if s.startswith("@"):
        expanded = MACROS.get(s.lower())
        if expanded is None:
            raise PatternError(pattern, f"unknown macro {s}")
        return expanded
    return s


def _parse_value(token: str, spec: _FieldSpec, pattern: str) -> int:
    if spec.names and token in spec.names:
        return spec.names[token]
    if not token.isdigit():
        raise PatternError(pattern, f"invalid {spec.name} value {token!r}")
    value = int(token)
    if value < spec.low or value > spec.high:
        raise PatternError(pattern, f"{spec.name} value {value} out of range {spec.low}-{spec.high}")
    return value


def _normalize_item(part: str, spec: _FieldSpec, pattern: str) -> str:
    m = _TOKEN_RE.match(part)
    if m is None:
        raise PatternError(pattern, f"invalid {spec.name} field item {part!r}")

    step = int(m["step"]) if m["step"] is not None else None
    if step == 0:
        raise PatternError(pattern, f"zero step in {spec.name} field")

    if m["any"]:
        if step is None:
            return "*"
        return f"*/{step}" if step <= spec.high - spec.low else str(spec.low)

    lo = _parse_value(m["lo"], spec, pattern)
    if m["hi"] is not None:
        hi = _parse_value(m["hi"], spec, pattern)
    else:
        hi = spec.high if step is not None else lo
    if lo > hi:
        raise PatternError(pattern, f"reversed range {part!r} in {spec.name} field")

    if spec.name == "weekday" and hi == 7:
        # Sunday spelled as 7: list the days out so croniter only sees 0-6.
        days = sorted({d % 7 for d in range(lo, hi + 1, step or 1)})
        return ",".join(str(d) for d in days)
    if step is None or step > hi - lo:
        return str(lo) if lo == hi or step is not None else f"{lo}-{hi}"
    return f"{lo}-{hi}/{step}"


def _normalize_field(raw: str, spec: _FieldSpec, pattern: str) -> str:
    items = raw.lower().split(",")
    if any(not item for item in items):
        raise PatternError(pattern, f"empty list item in {spec.name} field")
    return ",".join(_normalize_item(item, spec, pattern) for item in items)


class CronPattern:
    """A parsed cron pattern bound to a timezone."""

    def __init__(self, pattern: str, timezone_name: str = "UTC"):
        if not isinstance(pattern, str) or not pattern.strip():
            raise PatternError(str(pattern), "pattern is empty")
        self.source = pattern
        self.timezone = timezone_name
        try:
            self._tz = load_timezone(timezone_name)
        except KeyError:
            raise PatternError(pattern, f"unknown timezone {timezone_name!r}") from None

        fields = expand_macro(pattern).split()
        if len(fields) == 5:
            fields = ["0", *fields]
        if len(fields) != 6:
            raise PatternError(pattern, f"expected 5 or 6 fields, got {len(fields)}")

        self.expanded = " ".join(_normalize_field(raw, spec, pattern) for raw, spec in zip(fields, _FIELDS))

        unrestricted = [f.startswith(("*", "?")) for f in fields]
        self._hour_restricted = not unrestricted[2]
        self._day_or = not unrestricted[3] and not unrestricted[5]

        try:
            self._next_wall(_PROBE_BASE)
        except CroniterBadCronError as e:
            raise PatternError(pattern, str(e)) from e
        except CroniterBadDateError:
            raise PatternError(pattern, "day-of-month never occurs in the selected months") from None

    def __repr__(self) -> str:
        return f"CronPattern({self.source!r}, timezone={self.timezone!r})"

    def _next_wall(self, base: datetime) -> datetime:
        """First naive wall-clock time strictly after `base`. Raises CroniterBadDateError past the horizon."""
        it = croniter(
            self.expanded,
            base,
            day_or=self._day_or,
            second_at_beginning=True,
            max_years_between_matches=_SEARCH_YEARS,
        )
        return it.get_next(datetime)

    def _offset(self, instant: datetime) -> timedelta:
        return instant.astimezone(self._tz).utcoffset()

    def _wall(self, instant: datetime) -> datetime:
        return instant.astimezone(self._tz).replace(tzinfo=None)

    def _transition_between(self, lo: datetime, hi: datetime, offset: timedelta) -> datetime:
        """First whole second after `lo` whose UTC offset differs from `offset`."""
        lo = lo.replace(microsecond=0)
        while hi - lo > _ONE_SECOND:
            mid = lo + timedelta(seconds=int((hi - lo).total_seconds()) // 2)
            if self._offset(mid) == offset:
                lo = mid
            else:
                hi = mid
        return hi

    def matches(self, moment: datetime) -> bool:
        """True if `moment` (aware) is a fire time of this pattern."""
        if moment.microsecond:
            return False
        return self.next_after(moment - _ONE_SECOND) == moment

    def next_after(self, reference: datetime | None = None) -> datetime | None:
        """Earliest matching instant strictly after `reference`, or None if none exists.

        The result is an aware datetime in the pattern's timezone.
        """
        if reference is None:
            reference = utcnow()
        if reference.tzinfo is None:
            raise ValueError("reference must be timezone-aware")

        start = reference.astimezone(timezone.utc)
        limit = start + timedelta(days=366 * _SEARCH_YEARS)
        base = self._wall(start).replace(microsecond=0)

        while start < limit:
            offset = self._offset(start)
            try:
                wall = self._next_wall(base)
            except CroniterBadDateError:
                return None
            candidate = (wall - offset).replace(tzinfo=timezone.utc)
            if self._offset(candidate) == offset:
                return candidate.astimezone(self._tz) if candidate < limit else None

            # The offset changes before the candidate: resume from the transition.
            transition = self._transition_between(start, candidate, offset)
            base = self._wall(transition) - _ONE_SECOND
            if self._offset(transition) < offset and self._hour_restricted:
                # Repeated wall-clock times already had their first occurrence.
                base = max(base, self._wall(transition - _ONE_SECOND))
            start = transition

        return None

    def next_runs(self, count: int, reference: datetime | None = None) -> list[datetime]:
        """Up to `count` consecutive fire times after `reference`."""
        runs: list[datetime] = []
        current = reference if reference is not None else utcnow()
        while len(runs) < count:
            nxt = self.next_after(current)
            if nxt is None:
                break
            runs.append(nxt)
            current = nxt
        return runs

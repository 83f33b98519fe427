from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from errors import PatternError
from scheduler.pattern import MACROS, CronPattern, expand_macro

UTC = timezone.utc


def at(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


def test_five_fields_imply_second_zero():
    p = CronPattern("*/5 * * * *")
    assert p.expanded == "0 */5 * * * *"
    assert p.next_after(at(2026, 1, 1, 0, 0, 0)) == at(2026, 1, 1, 0, 5, 0)


def test_every_second_is_strictly_after_reference():
    p = CronPattern("* * * * * *")
    ref = at(2026, 1, 1, 0, 0, 0)
    assert p.next_after(ref) == at(2026, 1, 1, 0, 0, 1)
    assert p.next_after(ref + timedelta(microseconds=500)) == at(2026, 1, 1, 0, 0, 1)


def test_matching_reference_yields_following_occurrence():
    p = CronPattern("0 30 9 * * *")
    assert p.next_after(at(2026, 1, 1, 9, 30, 0)) == at(2026, 1, 2, 9, 30, 0)


def test_hourly_macro_at_top_of_hour_and_mid_hour():
    p = CronPattern("@hourly")
    assert p.next_after(at(2026, 1, 1, 10, 0, 0)) == at(2026, 1, 1, 11, 0, 0)
    nxt = p.next_after(at(2026, 1, 1, 10, 15, 30))
    assert nxt == at(2026, 1, 1, 11, 0, 0)
    assert (nxt.minute, nxt.second) == (0, 0)


@pytest.mark.parametrize(
    "macro,reference,expected",
    [
        ("@yearly", at(2026, 3, 5, 1, 2, 3), at(2027, 1, 1)),
        ("@annually", at(2026, 3, 5, 1, 2, 3), at(2027, 1, 1)),
        ("@monthly", at(2026, 3, 5, 1, 2, 3), at(2026, 4, 1)),
        ("@weekly", at(2026, 1, 1), at(2026, 1, 4)),
        ("@daily", at(2026, 1, 1, 23, 59, 59), at(2026, 1, 2)),
        ("@midnight", at(2026, 1, 1, 0, 0, 0), at(2026, 1, 2)),
    ],
)
def test_macros(macro, reference, expected):
    assert CronPattern(macro).next_after(reference) == expected


def test_expand_macro_is_case_insensitive_and_passes_plain_patterns_through():
    assert expand_macro("@DAILY") == MACROS["@daily"]
    assert expand_macro(" 0 * * * * ") == "0 * * * *"


def test_ranges_steps_and_lists():
    p = CronPattern("0 10-20/5,45 8 * * *")
    runs = p.next_runs(5, at(2026, 1, 1))
    assert [r.minute for r in runs] == [10, 15, 20, 45, 10]
    assert runs[4].day == 2


def test_value_with_step_runs_to_field_max():
    runs = CronPattern("0 50/3 * * * *").next_runs(5, at(2026, 1, 1))
    assert [(r.hour, r.minute) for r in runs] == [(0, 50), (0, 53), (0, 56), (0, 59), (1, 50)]


def test_month_and_weekday_names():
    p = CronPattern("0 0 9 * jan-MAR mon-fri")
    assert p.expanded == "0 0 9 * 1-3 1-5"
    # 2026-03-31 is a Tuesday; April is excluded, so the next run is in January.
    assert p.next_after(at(2026, 3, 31, 10)) == at(2027, 1, 1, 9)


def test_weekday_seven_is_sunday():
    p = CronPattern("0 0 0 * * 7")
    assert p.expanded == "0 0 0 * * 0"
    # 2026-01-01 is a Thursday.
    assert p.next_after(at(2026, 1, 1)) == at(2026, 1, 4)


def test_question_mark_is_unrestricted():
    p = CronPattern("0 0 0 ? * MON")
    assert p.next_after(at(2026, 1, 1)) == at(2026, 1, 5)


def test_day_of_month_and_weekday_are_or_combined_when_both_restricted():
    p = CronPattern("0 0 0 13 * FRI")
    runs = p.next_runs(3, at(2026, 1, 1))
    assert runs == [at(2026, 1, 2), at(2026, 1, 9), at(2026, 1, 13)]


def test_starred_step_in_day_of_month_keeps_and_semantics():
    # Odd days that are also Mondays.
    p = CronPattern("0 0 0 */2 * MON")
    assert p.next_after(at(2026, 1, 1)) == at(2026, 1, 5)


def test_restricted_day_of_month_alone():
    p = CronPattern("0 0 12 15 * *")
    assert p.next_after(at(2026, 1, 20)) == at(2026, 2, 15, 12)


def test_leap_day_pattern():
    p = CronPattern("0 0 0 29 2 *")
    assert p.next_after(at(2026, 3, 1)) == at(2028, 2, 29)


def test_fields_evaluated_in_job_timezone():
    p = CronPattern("0 0 9 * * *", "America/New_York")
    nxt = p.next_after(at(2026, 1, 1))
    assert nxt.astimezone(UTC) == at(2026, 1, 1, 14)
    assert nxt.hour == 9
    assert str(nxt.tzinfo) == "America/New_York"


def test_weekday_uses_job_timezone_not_utc():
    # 2026-01-05 02:00 UTC is still Sunday evening in Los Angeles.
    p = CronPattern("0 0 18 * * SUN", "America/Los_Angeles")
    assert p.next_after(at(2026, 1, 4, 12)).astimezone(UTC) == at(2026, 1, 5, 2)


def test_wall_clock_time_in_dst_gap_is_skipped():
    # 2026-03-08 02:30 does not exist in New York.
    p = CronPattern("0 30 2 * * *", "America/New_York")
    nxt = p.next_after(at(2026, 3, 8, 5))
    assert nxt.astimezone(UTC) == at(2026, 3, 9, 6, 30)


def test_repeated_wall_clock_time_fires_once():
    p = CronPattern("0 30 1 * * *", "America/New_York")
    first = p.next_after(at(2026, 11, 1, 4))
    assert first.astimezone(UTC) == at(2026, 11, 1, 5, 30)
    assert p.next_after(first).astimezone(UTC) == at(2026, 11, 2, 6, 30)


def test_second_occurrence_used_when_reference_lies_between():
    p = CronPattern("0 30 1 * * *", "America/New_York")
    # 06:00 UTC is 01:00 EST, after the first 01:30 (EDT) but before the second.
    assert p.next_after(at(2026, 11, 1, 6)).astimezone(UTC) == at(2026, 11, 1, 6, 30)


def test_unrestricted_hour_keeps_firing_through_repeated_hour():
    p = CronPattern("0 * * * * *", "America/New_York")
    # 05:59:30 UTC is 01:59:30 EDT; the clock then falls back to 01:00 EST.
    assert p.next_after(at(2026, 11, 1, 5, 59, 30)) == at(2026, 11, 1, 6, 0)
    assert p.next_runs(3, at(2026, 11, 1, 5, 58, 30)) == [at(2026, 11, 1, 5, 59), at(2026, 11, 1, 6, 0), at(2026, 11, 1, 6, 1)]


def test_hourly_minute_fires_in_both_copies_of_repeated_hour():
    p = CronPattern("0 30 * * * *", "America/New_York")
    assert p.next_runs(3, at(2026, 11, 1, 5)) == [at(2026, 11, 1, 5, 30), at(2026, 11, 1, 6, 30), at(2026, 11, 1, 7, 30)]


@pytest.mark.parametrize(
    "pattern",
    [
        "* * * * * *",
        "*/7 * * * * *",
        "0 */15 * * * *",
        "30 5 4 * * *",
        "0 0 0 1 * *",
        "0 0 12 * * MON-FRI",
        "0 0 0 13 * FRI",
        "15 10 3 1-7 * *",
        "@weekly",
        "0 0 6 1,15 JAN,JUL *",
    ],
)
@pytest.mark.parametrize("tz", ["UTC", "Europe/Berlin", "Asia/Kolkata", "America/Sao_Paulo"])
def test_next_fire_exceeds_reference_and_satisfies_every_field(pattern, tz):
    p = CronPattern(pattern, tz)
    references = [
        at(2026, 1, 1),
        at(2026, 2, 28, 23, 59, 59),
        at(2026, 3, 29, 0, 59, 59),
        at(2026, 10, 25, 0, 30),
        at(2026, 12, 31, 23, 59, 59),
    ]
    for ref in references:
        nxt = p.next_after(ref)
        assert nxt is not None
        assert nxt > ref
        assert p.matches(nxt)


def test_next_fire_is_earliest_for_dense_pattern():
    p = CronPattern("*/7 * * * * *")
    ref = at(2026, 1, 1, 0, 0, 50)
    nxt = p.next_after(ref)
    assert nxt == at(2026, 1, 1, 0, 0, 56)
    probe = ref + timedelta(seconds=1)
    while probe < nxt:
        assert not p.matches(probe)
        probe += timedelta(seconds=1)


def test_next_runs_are_strictly_increasing():
    runs = CronPattern("0 0 */6 * * *").next_runs(4, at(2026, 1, 1, 1))
    assert runs == [at(2026, 1, 1, 6), at(2026, 1, 1, 12), at(2026, 1, 1, 18), at(2026, 1, 2, 0)]


def test_naive_reference_is_rejected():
    with pytest.raises(ValueError):
        CronPattern("* * * * *").next_after(datetime(2026, 1, 1))


@pytest.mark.parametrize(
    "pattern",
    [
        "",
        "   ",
        "* * * *",
        "* * * * * * *",
        "60 * * * * *",
        "* 60 * * * *",
        "* * 24 * * *",
        "* * * 0 * *",
        "* * * 32 * *",
        "* * * * 13 *",
        "* * * * * 8",
        "*/0 * * * *",
        "*/x * * * *",
        "5-1 * * * *",
        "-5 * * * *",
        "1,,2 * * * *",
        "a * * * *",
        "* * * * FOO *",
        "@fortnightly",
        "0 0 30 2 *",
        "0 0 31 4,6,9,11 *",
        "² * * * * *",
        "*/² * * * * *",
        "0 0 L * *",
    ],
)
def test_invalid_patterns_raise_pattern_error(pattern):
    with pytest.raises(PatternError):
        CronPattern(pattern)


def test_unknown_timezone_raises_pattern_error():
    with pytest.raises(PatternError, match="unknown timezone"):
        CronPattern("* * * * *", "Mars/Olympus_Mons")


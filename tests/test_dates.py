from __future__ import annotations

from datetime import date, time

import pytest

from tutorslot.errors import ValidationError
from tutorslot.utils.dates import (
    Weekday,
    first_on_or_after,
    format_instance,
    from_minutes,
    intervals_overlap,
    to_minutes,
    weekday_of,
)


@pytest.mark.parametrize(
    "value,expected",
    [("00:00", 0), ("09:00", 540), ("9:30", 570), ("23:59", 1439), (time(10, 15), 615)],
)
def test_to_minutes_accepts_valid_times(value, expected) -> None:
    assert to_minutes(value) == expected


@pytest.mark.parametrize("value", ["24:00", "12:60", "7", "ab:cd", "", "-1:30"])
def test_to_minutes_rejects_out_of_range_or_malformed(value) -> None:
    with pytest.raises(ValidationError):
        to_minutes(value)


def test_to_minutes_names_the_offending_part() -> None:
    with pytest.raises(ValidationError) as exc:
        to_minutes("25:00")
    assert exc.value.field == "hour"

    with pytest.raises(ValidationError) as exc:
        to_minutes("10:75")
    assert exc.value.field == "minute"


def test_from_minutes_is_inverse_of_to_minutes() -> None:
    for hhmm in ("00:00", "07:05", "12:30", "23:59"):
        assert from_minutes(to_minutes(hhmm)) == hhmm


@pytest.mark.parametrize("minutes", [-1, 1440, 5000])
def test_from_minutes_rejects_out_of_range(minutes) -> None:
    with pytest.raises(ValidationError):
        from_minutes(minutes)


def test_back_to_back_intervals_do_not_overlap() -> None:
    nine, ten, eleven = to_minutes("09:00"), to_minutes("10:00"), to_minutes("11:00")
    assert intervals_overlap(nine, ten, ten, eleven) is False
    assert intervals_overlap(ten, eleven, nine, ten) is False


def test_partial_overlap_is_detected_symmetrically() -> None:
    a = (to_minutes("09:00"), to_minutes("10:30"))
    b = (to_minutes("10:00"), to_minutes("11:00"))
    assert intervals_overlap(*a, *b) is True
    assert intervals_overlap(*b, *a) is True


def test_containment_counts_as_overlap() -> None:
    assert intervals_overlap(540, 720, 600, 660)
    assert intervals_overlap(600, 660, 540, 720)


def test_weekday_of_uses_sunday_as_zero() -> None:
    assert weekday_of(date(2030, 1, 6)) == Weekday.SUNDAY
    assert weekday_of(date(2030, 1, 7)) == Weekday.MONDAY
    assert weekday_of(date(2030, 1, 12)) == Weekday.SATURDAY


def test_first_on_or_after() -> None:
    tuesday = date(2030, 1, 1)
    assert first_on_or_after(tuesday, Weekday.TUESDAY) == tuesday
    assert first_on_or_after(tuesday, Weekday.MONDAY) == date(2030, 1, 7)
    assert first_on_or_after(tuesday, Weekday.SUNDAY) == date(2030, 1, 6)


def test_format_instance() -> None:
    assert format_instance(date(2030, 1, 7), 540, 600) == "Monday 2030-01-07 09:00-10:00"

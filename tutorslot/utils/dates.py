from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from enum import IntEnum
from typing import Iterator
from zoneinfo import ZoneInfo

from tutorslot.config import settings
from tutorslot.errors import ValidationError

MINUTES_PER_DAY = 24 * 60

_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")


class Weekday(IntEnum):
    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @property
    def label(self) -> str:
        return self.name.capitalize()


def local_now() -> datetime:
    """Current wall-clock time in the normalized zone, without tzinfo."""
    return datetime.now(ZoneInfo(settings.tz)).replace(tzinfo=None)


def weekday_of(d: date) -> Weekday:
    # date.weekday(): понедельник = 0, у нас воскресенье = 0
    return Weekday((d.weekday() + 1) % 7)


def to_minutes(value: str | time) -> int:
    if isinstance(value, time):
        hour, minute = value.hour, value.minute
    else:
        m = _HHMM.match(str(value).strip())
        if m is None:
            raise ValidationError(f"Time must be in HH:MM format, got {value!r}", field="time")
        hour, minute = int(m.group(1)), int(m.group(2))
    if not 0 <= hour <= 23:
        raise ValidationError(f"Hour out of range: {hour}", field="hour")
    if not 0 <= minute <= 59:
        raise ValidationError(f"Minute out of range: {minute}", field="minute")
    return hour * 60 + minute


def from_minutes(minutes: int) -> str:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValidationError(f"Minutes out of range: {minutes}", field="minutes")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minutes_to_time(minutes: int) -> time:
    from_minutes(minutes)
    return time(hour=minutes // 60, minute=minutes % 60)


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open [start, end) overlap. Touching intervals do not overlap."""
    return start_a < end_b and start_b < end_a


def combine(d: date, minutes: int) -> datetime:
    return datetime.combine(d, minutes_to_time(minutes))


def iter_days(start: date, end: date) -> Iterator[date]:
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def first_on_or_after(d: date, weekday: int) -> date:
    return d + timedelta(days=(weekday - weekday_of(d)) % 7)


def format_window(start_minute: int, end_minute: int) -> str:
    return f"{from_minutes(start_minute)}-{from_minutes(end_minute)}"


def format_instance(d: date, start_minute: int, end_minute: int) -> str:
    return f"{weekday_of(d).label} {d.isoformat()} {format_window(start_minute, end_minute)}"

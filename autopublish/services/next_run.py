"""Next-occurrence arithmetic for schedules.

Everything here is pure: callers read the clock once per evaluation and pass
that ``now`` in, so the same inputs always give the same answer.
"""
import calendar
import re
from datetime import datetime, timedelta, timezone
from typing import Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from autopublish.db.models import Frequency
from autopublish.errors import ScheduleConfigError

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_time_of_day(value: str) -> Tuple[int, int]:
    m = _TIME_RE.match((value or "").strip())
    if not m:
        raise ScheduleConfigError(f"time_of_day must look like HH:MM, got {value!r}")
    hour, minute = int(m.group(1)), int(m.group(2))
    if hour > 23 or minute > 59:
        raise ScheduleConfigError(f"time_of_day out of range: {value!r}")
    return hour, minute


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError) as e:
        raise ScheduleConfigError(f"unknown timezone {name!r}") from e


def resolve_frequency(value: Union[str, Frequency]) -> Frequency:
    try:
        return Frequency(value)
    except ValueError as e:
        allowed = ", ".join(f.value for f in Frequency)
        raise ScheduleConfigError(f"frequency must be one of {allowed}, got {value!r}") from e


def add_month(value: datetime) -> datetime:
    """One calendar month later, clamping the day to the target month's end."""
    year = value.year + value.month // 12
    month = value.month % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _advance(candidate: datetime, frequency: Frequency) -> datetime:
    if frequency is Frequency.HOURLY:
        # absolute hour, so DST transitions neither skip nor repeat a run
        return (candidate.astimezone(timezone.utc) + timedelta(hours=1)).astimezone(candidate.tzinfo)
    if frequency is Frequency.DAILY:
        return candidate + timedelta(days=1)
    if frequency is Frequency.WEEKLY:
        return candidate + timedelta(days=7)
    return add_month(candidate)


def compute_next_run(
    frequency: Union[str, Frequency],
    time_of_day: str,
    tz_name: str,
    now: datetime,
) -> datetime:
    """Return the first occurrence strictly after ``now``, in UTC.

    The candidate is today's date (in ``tz_name``) at ``time_of_day``. If that
    has already passed it moves forward one unit of ``frequency`` at a time,
    keeping the wall-clock time. Only hourly schedules can need more than one
    step.
    """
    freq = resolve_frequency(frequency)
    tz = resolve_timezone(tz_name)
    hour, minute = parse_time_of_day(time_of_day)
    now_utc = as_utc(now)

    today = now_utc.astimezone(tz).date()
    candidate = datetime(today.year, today.month, today.day, hour, minute, tzinfo=tz)
    while candidate <= now_utc:
        candidate = _advance(candidate, freq)
    return candidate.astimezone(timezone.utc)


def next_run_for(schedule, now: datetime) -> datetime:
    return compute_next_run(schedule.frequency, schedule.time_of_day, schedule.timezone, now)

"""
Pure time-of-day helpers shared by slot generation and availability.

Times are ``datetime.time`` values everywhere inside the engine; strings
only appear at the API boundary and are parsed here.
"""

from datetime import date, datetime, time, timedelta
import re
from typing import Optional, Union

from .exceptions import ValidationException

_TIME_24H = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_TIME_12H = re.compile(r"^(\d{1,2}):(\d{2})\s*([AaPp][Mm])$")

MINUTES_PER_DAY = 24 * 60


def parse_time(value: Union[str, time]) -> time:
    """
    Parse a time-of-day string.

    Accepts ``HH:MM``, ``HH:MM:SS`` and ``h:MM AM``/``h:MM PM``.

    Raises:
        ValidationException: If the value is not a recognizable time
    """
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValidationException(f"Invalid time value: {value!r}", code="INVALID_TIME")

    raw = value.strip()
    match = _TIME_24H.match(raw)
    if match:
        hour, minute, second = int(match.group(1)), int(match.group(2)), int(match.group(3) or 0)
    else:
        match = _TIME_12H.match(raw)
        if not match:
            raise ValidationException(f"Invalid time format: {value!r}", code="INVALID_TIME")
        hour, minute, second = int(match.group(1)), int(match.group(2)), 0
        if hour < 1 or hour > 12:
            raise ValidationException(f"Invalid time format: {value!r}", code="INVALID_TIME")
        meridiem = match.group(3).upper()
        if meridiem == "AM" and hour == 12:
            hour = 0
        elif meridiem == "PM" and hour != 12:
            hour += 12

    if hour > 23 or minute > 59 or second > 59:
        raise ValidationException(f"Time out of range: {value!r}", code="INVALID_TIME")
    return time(hour, minute, second)


def minutes_since_midnight(value: time) -> int:
    return value.hour * 60 + value.minute


def time_from_minutes(minutes: int) -> time:
    """Build a time from minutes since midnight; values must fall inside one day."""
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return time(minutes // 60, minutes % 60)


def add_minutes_to_time(value: time, minutes: int) -> Optional[time]:
    """
    Add a duration to a time-of-day.

    Returns None when the result would cross midnight, since slots never do.
    """
    total = minutes_since_midnight(value) + minutes
    if total < 0 or total >= MINUTES_PER_DAY:
        return None
    return time_from_minutes(total)


def format_time_12h(value: Union[str, time]) -> str:
    """Format ``13:30`` as ``1:30 PM``."""
    parsed = parse_time(value)
    suffix = "PM" if parsed.hour >= 12 else "AM"
    hour = parsed.hour % 12 or 12
    return f"{hour}:{parsed.minute:02d} {suffix}"


def format_time_24h(value: time) -> str:
    return value.strftime("%H:%M")


def is_date_in_past(target: date, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return target < today


def is_time_in_past_today(target_date: date, start: time, now: Optional[datetime] = None) -> bool:
    """True when ``target_date`` is today and ``start`` has already passed."""
    now = now or datetime.now()
    if target_date != now.date():
        return False
    return start < now.time().replace(microsecond=0)


def intervals_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """Half-open ``[start, end)`` overlap test."""
    return start_a < end_b and end_a > start_b


def iter_dates(start: date, count: int):
    for offset in range(count):
        yield start + timedelta(days=offset)

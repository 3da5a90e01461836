"""
Slot generation for activity schedules.

Pure computation: turns an operating schedule into the ordered candidate
``[start, end)`` intervals for one date. No I/O and no clock reads, so
the same schedule and date always produce the same sequence.
"""

from dataclasses import dataclass, field
from datetime import date, time
from typing import Any, Dict, FrozenSet, Iterator, Mapping, Optional

from ..core.exceptions import ValidationException
from ..core.time_utils import (
    MINUTES_PER_DAY,
    intervals_overlap,
    minutes_since_midnight,
    parse_time,
    time_from_minutes,
)

WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def parse_weekday(value: Any) -> int:
    """
    Map a weekday to ``date.weekday()`` numbering (Monday is 0).

    Accepts full names, three-letter abbreviations (any case) or an int.
    """
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 6:
        return value
    if isinstance(value, str):
        key = value.strip().lower()
        for index, name in enumerate(WEEKDAY_NAMES):
            if key == name or key == name[:3]:
                return index
    raise ValidationException(f"Unknown weekday: {value!r}", code="INVALID_WEEKDAY")


@dataclass(frozen=True)
class CandidateSlot:
    start: time
    end: time

    def overlaps(self, start: time, end: time) -> bool:
        return intervals_overlap(self.start, self.end, start, end)


@dataclass(frozen=True)
class DayHours:
    open_time: time
    close_time: time
    enabled: bool = True


@dataclass(frozen=True)
class OperatingSchedule:
    """
    Everything slot generation needs to know about an activity.

    ``slot_interval_minutes`` may be shorter than the duration (a 60 minute
    room can start every 30 minutes); when unset the step equals the duration.
    """

    operating_days: FrozenSet[int]
    open_time: time
    close_time: time
    duration_minutes: int
    slot_interval_minutes: Optional[int] = None
    custom_hours: Mapping[int, DayHours] = field(default_factory=dict)
    custom_dates: Mapping[date, DayHours] = field(default_factory=dict)
    blocked_dates: FrozenSet[date] = frozenset()

    def __post_init__(self) -> None:
        if self.duration_minutes <= 0:
            raise ValidationException("Activity duration must be positive", code="INVALID_SCHEDULE")
        if self.slot_interval_minutes is not None and self.slot_interval_minutes <= 0:
            raise ValidationException("Slot interval must be positive", code="INVALID_SCHEDULE")

    @property
    def step_minutes(self) -> int:
        return self.slot_interval_minutes or self.duration_minutes

    def hours_for(self, target_date: date) -> Optional[DayHours]:
        """Opening hours in force on ``target_date``, or None when closed."""
        if target_date in self.blocked_dates:
            return None

        custom = self.custom_dates.get(target_date)
        if custom is not None:
            return custom if custom.enabled else None

        weekday = target_date.weekday()
        if weekday not in self.operating_days:
            return None

        override = self.custom_hours.get(weekday)
        if override is not None:
            return override if override.enabled else None
        return DayHours(self.open_time, self.close_time)

    @classmethod
    def from_activity(cls, activity: Any) -> "OperatingSchedule":
        """Build a schedule from an Activity row and its related dates."""
        custom_hours: Dict[int, DayHours] = {}
        for day, entry in (activity.custom_hours or {}).items():
            enabled = bool(entry.get("enabled", True))
            custom_hours[parse_weekday(day)] = DayHours(
                open_time=parse_time(entry.get("start_time") or activity.open_time),
                close_time=parse_time(entry.get("end_time") or activity.close_time),
                enabled=enabled,
            )

        custom_dates = {
            entry.available_date: DayHours(entry.start_time, entry.end_time)
            for entry in (activity.custom_dates or [])
        }
        full_day_blocks = frozenset(
            blocked.blocked_date
            for blocked in (activity.blocked_dates or [])
            if blocked.is_full_day
        )

        return cls(
            operating_days=frozenset(parse_weekday(day) for day in activity.operating_days or []),
            open_time=activity.open_time,
            close_time=activity.close_time,
            duration_minutes=activity.duration_minutes,
            slot_interval_minutes=activity.slot_interval_minutes,
            custom_hours=custom_hours,
            custom_dates=custom_dates,
            blocked_dates=full_day_blocks,
        )


class SlotSequence:
    """
    Finite, restartable sequence of candidate slots for one day.

    Every iteration regenerates from the bounds, so the sequence can be
    walked any number of times.
    """

    def __init__(self, open_time: time, close_time: time, duration_minutes: int, step_minutes: int):
        self._open = minutes_since_midnight(open_time)
        self._close = minutes_since_midnight(close_time)
        if self._close == 0 and self._open > 0:
            # A 00:00 close means open until midnight; slots still end before it.
            self._close = MINUTES_PER_DAY - 1
        self._duration = duration_minutes
        self._step = step_minutes

    @classmethod
    def empty(cls) -> "SlotSequence":
        return cls(time(0, 0), time(0, 0), 1, 1)

    def __iter__(self) -> Iterator[CandidateSlot]:
        current = self._open
        # A slot ending exactly at closing time is kept.
        while current + self._duration <= self._close:
            yield CandidateSlot(
                start=time_from_minutes(current),
                end=time_from_minutes(current + self._duration),
            )
            current += self._step

    def __len__(self) -> int:
        span = self._close - self._open - self._duration
        if span < 0:
            return 0
        return span // self._step + 1

    def __repr__(self) -> str:
        return f"<SlotSequence {len(self)} slots step={self._step}m>"


def generate_slots(schedule: OperatingSchedule, target_date: date) -> SlotSequence:
    """Candidate slots for ``target_date``; empty when the activity is closed."""
    hours = schedule.hours_for(target_date)
    if hours is None:
        return SlotSequence.empty()
    return SlotSequence(
        hours.open_time,
        hours.close_time,
        schedule.duration_minutes,
        schedule.step_minutes,
    )


"""
Availability Service for the Bookflow engine.

Answers "is this slot free?" against the reservation store. A slot is free
when no non-canceled reservation for the same activity and date overlaps
it on the half-open interval ``[start, end)``.

Reads fail closed: if the store cannot be queried, slots are reported as
unavailable rather than risking an overbooking. Day listings fetch the
day's reservations once and evaluate every candidate in memory, giving
the same per-slot answer as is_slot_available.
"""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import MAX_SCAN_DAYS
from ..core.exceptions import NotFoundException, RepositoryException, ValidationException
from ..core.time_utils import (
    format_time_12h,
    format_time_24h,
    intervals_overlap,
    is_date_in_past,
    is_time_in_past_today,
    iter_dates,
    parse_time,
)
from ..models.activity import Activity
from ..models.reservation import Reservation
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.activity_repository import ActivityRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.reservation_repository import ReservationRepository
from .availability_cache import AvailabilityCache
from .base import BaseService
from .slot_generator import CandidateSlot, OperatingSchedule, generate_slots

logger = logging.getLogger(__name__)


class SlotReason(str, Enum):
    BOOKED = "booked"
    BLOCKED = "blocked"
    PAST = "past"
    BEYOND_WINDOW = "beyond_window"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class SlotAvailability:
    date: date
    start: time
    end: time
    available: bool
    reason: Optional[SlotReason]
    capacity: int
    remaining_capacity: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "start": format_time_24h(self.start),
            "end": format_time_24h(self.end),
            "display_time": format_time_12h(self.start),
            "available": self.available,
            "reason": self.reason.value if self.reason else None,
            "capacity": self.capacity,
            "remaining_capacity": self.remaining_capacity,
        }


class AvailabilityService(BaseService):
    """
    Slot availability for activities.

    The clock is injectable so "past" and booking-window checks can be
    pinned in tests.
    """

    def __init__(
        self,
        db: Session,
        activity_repository: Optional[ActivityRepository] = None,
        reservation_repository: Optional[ReservationRepository] = None,
        cache: Optional[AvailabilityCache] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        super().__init__(db)
        self.activity_repository = (
            activity_repository or RepositoryFactory.create_activity_repository(db)
        )
        self.reservation_repository = (
            reservation_repository or RepositoryFactory.create_reservation_repository(db)
        )
        self.cache = cache
        self._clock = clock

    @BaseService.measure_operation("is_slot_available")
    async def is_slot_available(
        self,
        activity_id: str,
        booking_date: date,
        start: Union[str, time],
        end: Union[str, time],
    ) -> bool:
        """
        True only when no non-canceled reservation overlaps ``[start, end)``.

        Raises:
            ValidationException: If the times are malformed or not ordered
        """
        start_time, end_time = self._parse_range(start, end)
        try:
            overlapping = await asyncio.to_thread(
                self.reservation_repository.has_overlap,
                activity_id,
                booking_date,
                start_time,
                end_time,
            )
        except RepositoryException as exc:
            self.logger.warning(
                "Overlap check failed for activity %s on %s, reporting unavailable: %s",
                activity_id,
                booking_date,
                exc,
            )
            prometheus_metrics.inc_availability_fail_closed("is_slot_available")
            return False
        return not overlapping

    @BaseService.measure_operation("get_available_slots")
    async def get_available_slots(
        self, activity_id: str, target_date: date
    ) -> List[SlotAvailability]:
        """
        Every candidate slot for the date with its availability and reason.

        Raises:
            NotFoundException: If the activity does not exist or is inactive
        """
        if self.cache is not None:
            cached = self.cache.get(activity_id, target_date)
            if cached is not None:
                return list(cached)

        activity = await self._load_activity(activity_id)
        if activity is None:
            return []

        candidates = list(generate_slots(OperatingSchedule.from_activity(activity), target_date))
        if not candidates:
            return []

        store_failed = False
        try:
            reservations = await asyncio.to_thread(
                self.reservation_repository.get_active_for_date, activity_id, target_date
            )
        except RepositoryException as exc:
            self.logger.warning(
                "Reservation fetch failed for activity %s on %s, marking day unavailable: %s",
                activity_id,
                target_date,
                exc,
            )
            prometheus_metrics.inc_availability_fail_closed("get_available_slots")
            reservations = []
            store_failed = True

        slots = self._evaluate(activity, target_date, candidates, reservations, store_failed)

        if self.cache is not None and not store_failed:
            self.cache.set(activity_id, target_date, tuple(slots), venue_id=activity.venue_id)
        return slots

    @BaseService.measure_operation("get_next_available_date")
    async def get_next_available_date(
        self,
        activity_id: str,
        from_date: date,
        max_days_to_scan: Optional[int] = None,
    ) -> Optional[date]:
        """
        First date on or after ``from_date`` with at least one open slot.

        A linear scan; there is no early cancellation, so callers that lose
        interest should discard the result.
        """
        horizon = max_days_to_scan or settings.next_available_scan_days
        if horizon < 1 or horizon > MAX_SCAN_DAYS:
            raise ValidationException(
                f"max_days_to_scan must be between 1 and {MAX_SCAN_DAYS}",
                code="INVALID_SCAN_RANGE",
            )

        for candidate in iter_dates(from_date, horizon):
            slots = await self.get_available_slots(activity_id, candidate)
            if any(slot.available for slot in slots):
                return candidate
        self.logger.info(
            "No availability for activity %s within %d days of %s", activity_id, horizon, from_date
        )
        return None

    async def _load_activity(self, activity_id: str) -> Optional[Activity]:
        try:
            activity = await asyncio.to_thread(self.activity_repository.get_active, activity_id)
        except RepositoryException as exc:
            self.logger.warning("Activity lookup failed for %s: %s", activity_id, exc)
            prometheus_metrics.inc_availability_fail_closed("load_activity")
            return None
        if activity is None:
            raise NotFoundException(f"Activity {activity_id} not found", code="ACTIVITY_NOT_FOUND")
        return activity

    def _evaluate(
        self,
        activity: Activity,
        target_date: date,
        candidates: Sequence[CandidateSlot],
        reservations: Sequence[Reservation],
        store_failed: bool,
    ) -> List[SlotAvailability]:
        now = self._clock()
        today = now.date()
        blocked_ranges: List[Tuple[time, time]] = [
            (blocked.start_time, blocked.end_time)
            for blocked in activity.blocked_dates or []
            if blocked.blocked_date == target_date and not blocked.is_full_day
        ]
        beyond_window = (
            activity.advance_booking_days is not None
            and (target_date - today).days > activity.advance_booking_days
        )
        capacity = activity.max_party_size

        results = []
        for slot in candidates:
            reason: Optional[SlotReason] = None
            if is_date_in_past(target_date, today) or is_time_in_past_today(
                target_date, slot.start, now
            ):
                reason = SlotReason.PAST
            elif beyond_window:
                reason = SlotReason.BEYOND_WINDOW
            elif any(slot.overlaps(start, end) for start, end in blocked_ranges):
                reason = SlotReason.BLOCKED
            elif store_failed:
                reason = SlotReason.UNAVAILABLE
            elif any(
                intervals_overlap(slot.start, slot.end, existing.start_time, existing.end_time)
                for existing in reservations
            ):
                reason = SlotReason.BOOKED

            available = reason is None
            results.append(
                SlotAvailability(
                    date=target_date,
                    start=slot.start,
                    end=slot.end,
                    available=available,
                    reason=reason,
                    capacity=capacity,
                    remaining_capacity=capacity if available else 0,
                )
            )
        return results

    @staticmethod
    def _parse_range(start: Union[str, time], end: Union[str, time]) -> Tuple[time, time]:
        start_time, end_time = parse_time(start), parse_time(end)
        if end_time <= start_time:
            raise ValidationException(
                "Slot end must be after its start",
                code="INVALID_TIME_RANGE",
                details={"start": str(start_time), "end": str(end_time)},
            )
        return start_time, end_time

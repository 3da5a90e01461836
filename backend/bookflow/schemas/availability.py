"""Availability response schemas."""

from datetime import date
from typing import List, Literal, Optional

from pydantic import Field

from ._strict_base import StrictModel

SlotReasonLiteral = Literal["booked", "blocked", "past", "beyond_window", "unavailable"]


class SlotResponse(StrictModel):
    date: date
    start: str = Field(..., description="Start time, HH:MM")
    end: str = Field(..., description="End time, HH:MM")
    display_time: str = Field(..., description="Start time formatted as h:MM AM/PM")
    available: bool
    reason: Optional[SlotReasonLiteral] = None
    capacity: int
    remaining_capacity: int


class AvailabilityResponse(StrictModel):
    activity_id: str
    date: date
    slots: List[SlotResponse]
    available_count: int


class NextAvailableDateResponse(StrictModel):
    activity_id: str
    from_date: date
    max_days: int
    next_available_date: Optional[date] = None

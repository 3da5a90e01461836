"""
Availability routes - API v1.

Read-only views of bookable slots for an activity.
"""

from datetime import date
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...api.dependencies import get_availability_service
from ...core.config import settings
from ...core.constants import MAX_SCAN_DAYS
from ...core.exceptions import DomainException
from ...schemas.availability import AvailabilityResponse, NextAvailableDateResponse, SlotResponse
from ...services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

# V1 router - mounted at /api/v1/activities
router = APIRouter(tags=["availability-v1"])


@router.get("/{activity_id}/availability", response_model=AvailabilityResponse)
async def get_activity_availability(
    activity_id: str,
    target_date: date = Query(..., alias="date", description="Date to list slots for"),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """
    List every candidate slot for the date with its availability.

    Unavailable slots carry a reason: booked, blocked, past,
    beyond_window, or unavailable when the reservation store could not be
    read.
    """
    try:
        slots = await availability_service.get_available_slots(activity_id, target_date)
    except DomainException as exc:
        raise exc.to_http_exception() from exc

    return AvailabilityResponse(
        activity_id=activity_id,
        date=target_date,
        slots=[SlotResponse(**slot.to_dict()) for slot in slots],
        available_count=sum(1 for slot in slots if slot.available),
    )


@router.get("/{activity_id}/next-available-date", response_model=NextAvailableDateResponse)
async def get_next_available_date(
    activity_id: str,
    from_date: Optional[date] = Query(None, description="Defaults to today"),
    max_days: Optional[int] = Query(None, ge=1, le=MAX_SCAN_DAYS),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> NextAvailableDateResponse:
    start = from_date or date.today()
    try:
        found = await availability_service.get_next_available_date(activity_id, start, max_days)
    except DomainException as exc:
        raise exc.to_http_exception() from exc

    return NextAvailableDateResponse(
        activity_id=activity_id,
        from_date=start,
        max_days=max_days or settings.next_available_scan_days,
        next_available_date=found,
    )

"""
Realtime availability stream - API v1.

Clients open one stream per activity or venue and refetch availability
whenever an ``invalidate`` event arrives. Bursts of changes arrive as a
single event after the debounce window.
"""

import logging
from typing import AsyncGenerator, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sse_starlette.sse import EventSourceResponse

from ...api.dependencies import get_invalidation_bus_dependency
from ...realtime.events import SubscriptionScope
from ...realtime.invalidation_bus import RealtimeInvalidationBus
from ...realtime.sse_stream import create_availability_stream

logger = logging.getLogger(__name__)

# V1 router - mounted at /api/v1/realtime
router = APIRouter(tags=["realtime-v1"])


def _resolve_scope(activity_id: Optional[str], venue_id: Optional[str]) -> SubscriptionScope:
    if activity_id and venue_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Pass activity_id or venue_id, not both", "code": "INVALID_SCOPE"},
        )
    if activity_id:
        return SubscriptionScope.activity(activity_id)
    if venue_id:
        return SubscriptionScope.venue(venue_id)
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"message": "activity_id or venue_id is required", "code": "INVALID_SCOPE"},
    )


@router.get(
    "/availability",
    response_class=EventSourceResponse,
    responses={200: {"content": {"text/event-stream": {}}}},
)
async def stream_availability(
    activity_id: Optional[str] = Query(None),
    venue_id: Optional[str] = Query(None),
    bus: RealtimeInvalidationBus = Depends(get_invalidation_bus_dependency),
) -> EventSourceResponse:
    """
    SSE stream of availability invalidations for one activity or venue.

    Event types: ``status``, ``invalidate``, ``heartbeat``.
    """
    scope = _resolve_scope(activity_id, venue_id)
    logger.info("[SSE] Availability stream opened for %s", scope)

    async def event_generator() -> AsyncGenerator[Dict[str, str], None]:
        async for event in create_availability_stream(bus, scope):
            yield event

    return EventSourceResponse(
        event_generator(),
        headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
        media_type="text/event-stream",
    )

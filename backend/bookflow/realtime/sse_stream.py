"""
SSE stream over the invalidation bus.

One bus subscription per connected client. Notices are pushed into a
queue by the subscription callback and drained here with a heartbeat
timeout, so a quiet channel still produces traffic. When the subscription
cannot be established the client receives a single ``status`` event
naming the failed state and the stream ends; clients then fall back to
manual refresh. A channel that drops later ends the stream the same way.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import json
import logging
from typing import AsyncGenerator, Dict, Optional, Union

from ..core.config import settings
from .events import ConnectionState, InvalidationNotice, SubscriptionScope
from .invalidation_bus import RealtimeInvalidationBus

logger = logging.getLogger(__name__)

_DROPPED_STATES = frozenset({ConnectionState.ERROR, ConnectionState.TIMED_OUT})


def _status_event(scope: SubscriptionScope, state: ConnectionState) -> Dict[str, str]:
    return {
        "event": "status",
        "data": json.dumps(
            {
                "scope": str(scope),
                "state": state.value,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        ),
    }


async def create_availability_stream(
    bus: RealtimeInvalidationBus,
    scope: SubscriptionScope,
    heartbeat_interval: Optional[float] = None,
) -> AsyncGenerator[Dict[str, str], None]:
    """
    Yield SSE event dicts (``event``/``data``) for changes in ``scope``.

    Event types: ``status`` (connection state), ``invalidate`` (something in
    scope changed; refetch), ``heartbeat``.
    """
    interval = heartbeat_interval or settings.sse_heartbeat_interval
    queue: asyncio.Queue[Union[InvalidationNotice, ConnectionState]] = asyncio.Queue()

    def on_state_change(state: ConnectionState) -> None:
        if state in _DROPPED_STATES:
            queue.put_nowait(state)

    subscription = await bus.subscribe(scope, queue.put_nowait, on_state_change=on_state_change)
    yield _status_event(scope, subscription.state)
    if not subscription.is_live:
        logger.warning("[SSE-STREAM] %s not live (%s)", scope, subscription.state.value)
        return

    try:
        while True:
            try:
                item = await asyncio.wait_for(queue.get(), timeout=interval)
            except asyncio.TimeoutError:
                logger.debug(f"[SSE-HEARTBEAT] Sending heartbeat for {scope}")
                yield {
                    "event": "heartbeat",
                    "data": json.dumps(
                        {
                            "type": "heartbeat",
                            "timestamp": datetime.now(timezone.utc).isoformat(),
                        }
                    ),
                }
                continue
            if isinstance(item, ConnectionState):
                logger.warning("[SSE-STREAM] %s dropped (%s)", scope, item.value)
                yield _status_event(scope, item)
                return
            yield {"event": "invalidate", "data": json.dumps(item.to_dict())}
    except asyncio.CancelledError:
        logger.info(f"[SSE-STREAM] Stream cancelled for {scope}")
        raise
    finally:
        await bus.unsubscribe(subscription)

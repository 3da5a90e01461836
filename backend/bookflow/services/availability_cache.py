"""
Slot-list cache keyed by activity and date.

Entries expire after a fixed TTL measured on an injected clock, and are
dropped early whenever the invalidation bus reports a change touching
their activity or venue. A TTL of zero disables caching, and so does an
attached bus subscription that is not live.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
import threading
import time
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

from ..realtime.events import ConnectionState, InvalidationNotice, ScopeKind, SubscriptionScope

if TYPE_CHECKING:
    from ..realtime.invalidation_bus import RealtimeInvalidationBus, Subscription

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, date]


@dataclass
class _Entry:
    value: Any
    venue_id: Optional[str]
    expires_at: float


class AvailabilityCache:
    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[CacheKey, _Entry] = {}
        self._lock = threading.Lock()
        self._subscription: Optional["Subscription"] = None
        self.hits = 0
        self.misses = 0

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    @property
    def serving(self) -> bool:
        """False while attached to a bus subscription that is not live."""
        if not self.enabled:
            return False
        return self._subscription is None or self._subscription.is_live

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, activity_id: str, target_date: date) -> Optional[Any]:
        if not self.serving:
            return None
        key = (activity_id, target_date)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry.value

    def set(
        self, activity_id: str, target_date: date, value: Any, venue_id: Optional[str] = None
    ) -> None:
        if not self.serving:
            return
        with self._lock:
            self._entries[(activity_id, target_date)] = _Entry(
                value=value, venue_id=venue_id, expires_at=self._clock() + self.ttl_seconds
            )

    def invalidate_activity(self, activity_id: str) -> int:
        with self._lock:
            stale = [key for key in self._entries if key[0] == activity_id]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Invalidated %d cached days for activity %s", len(stale), activity_id)
        return len(stale)

    def invalidate_venue(self, venue_id: str) -> int:
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.venue_id == venue_id]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def handle_notice(self, notice: InvalidationNotice) -> None:
        """Drop whatever the notice may have made stale."""
        if notice.scope_id is None:
            self.clear()
        elif notice.scope.kind == ScopeKind.VENUE:
            self.invalidate_venue(notice.scope_id)
        elif notice.scope.kind == ScopeKind.ACTIVITY:
            self.invalidate_activity(notice.scope_id)
        else:
            # Global notices name an activity when there is one, else a venue.
            self.invalidate_activity(notice.scope_id)
            self.invalidate_venue(notice.scope_id)

    async def attach(self, bus: "RealtimeInvalidationBus") -> "Subscription":
        """
        Follow every change on the bus, undebounced.

        Entries are only served while the subscription is live. A cache
        that cannot hear invalidations stays empty until it is reattached.
        """
        self._subscription = await bus.subscribe(
            SubscriptionScope.all(),
            self.handle_notice,
            debounce_seconds=0,
            on_state_change=self._on_bus_state,
        )
        if not self._subscription.is_live:
            logger.warning(
                "Availability cache bypassed: bus subscription is %s",
                self._subscription.state.value,
            )
            self.clear()
        return self._subscription

    async def detach(self, bus: "RealtimeInvalidationBus") -> None:
        if self._subscription is not None:
            await bus.unsubscribe(self._subscription)
            self._subscription = None
        self.clear()

    def _on_bus_state(self, state: ConnectionState) -> None:
        if state != ConnectionState.SUBSCRIBED:
            self.clear()

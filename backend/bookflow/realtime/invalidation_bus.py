"""
Debounced publish/subscribe for "availability may have changed" hints.

Writers publish a ChangeEvent after committing. Each subscriber owns its
own cancellable trailing timer: a burst of events inside the debounce
window collapses into a single InvalidationNotice delivered once the
window has been quiet. Notices carry table, event type and changed scope
only, never a diff, so consumers always re-fetch.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from ..core.config import settings
from ..monitoring.prometheus_metrics import prometheus_metrics
from .events import (
    ChangeEvent,
    ChangeEventType,
    ConnectionState,
    InvalidationNotice,
    ScopeKind,
    SubscriptionScope,
)
from .transports import EventTransport, InMemoryTransport, Listener

logger = logging.getLogger(__name__)

NoticeCallback = Callable[[InvalidationNotice], Union[None, Awaitable[None]]]
StateCallback = Callable[[ConnectionState], None]

_subscription_ids = itertools.count(1)


class Subscription:
    """
    Handle returned by RealtimeInvalidationBus.subscribe.

    ``state`` is always readable; ``on_state_change`` additionally pushes
    every transition so a widget can drive a live indicator.
    """

    def __init__(
        self,
        scope: SubscriptionScope,
        on_event: NoticeCallback,
        debounce_seconds: float,
        on_state_change: Optional[StateCallback] = None,
    ):
        self.id = next(_subscription_ids)
        self.scope = scope
        self.debounce_seconds = debounce_seconds
        self.error: Optional[BaseException] = None
        self._on_event = on_event
        self._on_state_change = on_state_change
        self._state = ConnectionState.CONNECTING
        self._timer: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[ChangeEvent] = None
        self._pending_count = 0
        self._listener: Optional[Listener] = None
        self._tasks: Set[asyncio.Task] = set()

    def __repr__(self) -> str:
        return f"<Subscription {self.id} {self.scope.channel} {self._state.value}>"

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_live(self) -> bool:
        return self._state == ConnectionState.SUBSCRIBED

    @property
    def has_pending_notification(self) -> bool:
        return self._timer is not None

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        logger.debug("[BUS] Subscription %s -> %s", self.id, state.value)
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception:
                logger.exception("[BUS] State callback for subscription %s failed", self.id)

    def _receive(self, payload: Dict[str, Any]) -> None:
        """Transport callback: record the change and (re)arm the quiet-window timer."""
        if self._state != ConnectionState.SUBSCRIBED:
            return
        self._pending = ChangeEvent.from_dict(payload)
        self._pending_count += 1

        if self.debounce_seconds <= 0:
            self._flush()
            return

        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_seconds, self._flush)

    def _fail(self, exc: BaseException) -> None:
        """Transport callback: the channel dropped after it was live."""
        if self._state != ConnectionState.SUBSCRIBED:
            return
        logger.warning("[BUS] Subscription %s lost its channel: %s", self.id, exc)
        self.error = exc
        self._cancel_timer()
        self._pending, self._pending_count = None, 0
        self._set_state(ConnectionState.ERROR)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _flush(self) -> None:
        self._timer = None
        event, count = self._pending, self._pending_count
        self._pending, self._pending_count = None, 0
        if event is None or self._state != ConnectionState.SUBSCRIBED:
            return

        notice = InvalidationNotice(
            table=event.table,
            event_type=event.event_type,
            scope_id=self._changed_scope_id(event),
            scope=self.scope,
            coalesced=count,
        )
        prometheus_metrics.inc_realtime_notification(self.scope.kind.value)
        try:
            result = self._on_event(notice)
        except Exception:
            logger.exception("[BUS] Subscriber %s failed handling %s", self.id, notice.to_dict())
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "[BUS] Async subscriber %s failed: %s", self.id, task.exception(), exc_info=False
            )

    def _changed_scope_id(self, event: ChangeEvent) -> Optional[str]:
        if self.scope.kind == ScopeKind.VENUE:
            return event.venue_id
        return event.activity_id or event.venue_id


class RealtimeInvalidationBus:
    """Scope-keyed pub/sub with per-subscriber trailing debounce."""

    def __init__(
        self,
        transport: Optional[EventTransport] = None,
        *,
        debounce_seconds: Optional[float] = None,
        subscribe_timeout_seconds: Optional[float] = None,
    ):
        self.transport = transport or InMemoryTransport()
        self.debounce_seconds = (
            settings.realtime_debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self.subscribe_timeout_seconds = (
            settings.realtime_subscribe_timeout_seconds
            if subscribe_timeout_seconds is None
            else subscribe_timeout_seconds
        )
        self._subscriptions: Dict[int, Subscription] = {}

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def publish(self, event: ChangeEvent) -> None:
        """Fan an event out to its activity, venue and global channels."""
        payload = event.to_dict()
        for scope in event.scopes():
            await self.transport.publish(scope.channel, payload)
        logger.debug(
            "[BUS] Published %s on %s (activity=%s venue=%s)",
            event.event_type.value,
            event.table,
            event.activity_id,
            event.venue_id,
        )

    async def publish_change(
        self,
        table: str,
        event_type: ChangeEventType,
        *,
        activity_id: Optional[str] = None,
        venue_id: Optional[str] = None,
    ) -> None:
        await self.publish(
            ChangeEvent(
                table=table, event_type=event_type, activity_id=activity_id, venue_id=venue_id
            )
        )

    async def subscribe(
        self,
        scope: SubscriptionScope,
        on_event: NoticeCallback,
        *,
        debounce_seconds: Optional[float] = None,
        on_state_change: Optional[StateCallback] = None,
    ) -> Subscription:
        """
        Register interest in a scope.

        Never raises for transport trouble: the returned handle ends up in
        ``ERROR`` or ``TIMED_OUT`` instead, so callers can fall back to
        manual refresh.
        """
        subscription = Subscription(
            scope,
            on_event,
            self.debounce_seconds if debounce_seconds is None else debounce_seconds,
            on_state_change,
        )
        if on_state_change is not None:
            on_state_change(ConnectionState.CONNECTING)

        try:
            listener = await asyncio.wait_for(
                self.transport.listen(scope.channel, subscription._receive, subscription._fail),
                timeout=self.subscribe_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "[BUS] Subscribe to %s timed out after %.1fs",
                scope.channel,
                self.subscribe_timeout_seconds,
            )
            subscription._set_state(ConnectionState.TIMED_OUT)
            return subscription
        except Exception as exc:
            # Transport failures surface through the ERROR state.
            logger.error("[BUS] Subscribe to %s failed: %s", scope.channel, exc)
            subscription.error = exc
            subscription._set_state(ConnectionState.ERROR)
            return subscription

        subscription._listener = listener
        self._subscriptions[subscription.id] = subscription
        subscription._set_state(ConnectionState.SUBSCRIBED)
        logger.info("[BUS] Subscription %s live on %s", subscription.id, scope.channel)
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        """Cancel any pending notification and release the channel."""
        subscription._cancel_timer()
        subscription._pending, subscription._pending_count = None, 0
        self._subscriptions.pop(subscription.id, None)

        listener, subscription._listener = subscription._listener, None
        if listener is not None:
            await listener.close()
        subscription._set_state(ConnectionState.CLOSED)

    async def close(self) -> None:
        for subscription in list(self._subscriptions.values()):
            await self.unsubscribe(subscription)
        await self.transport.close()


_bus: Optional[RealtimeInvalidationBus] = None


def get_invalidation_bus() -> RealtimeInvalidationBus:
    """
    Get the process-wide bus.

    Falls back to an in-memory bus when the app lifespan has not installed one.
    """
    global _bus
    if _bus is None:
        _bus = RealtimeInvalidationBus()
    return _bus


def set_invalidation_bus(bus: Optional[RealtimeInvalidationBus]) -> None:
    global _bus
    _bus = bus

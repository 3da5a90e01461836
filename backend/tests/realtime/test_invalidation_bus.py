# backend/tests/realtime/test_invalidation_bus.py
"""
Tests for RealtimeInvalidationBus: per-subscriber trailing debounce,
scope routing and the observable connection state.
"""

import asyncio

import pytest

from bookflow.realtime.events import (
    ChangeEventType,
    ConnectionState,
    ScopeKind,
    SubscriptionScope,
)
from bookflow.realtime.invalidation_bus import RealtimeInvalidationBus
from bookflow.realtime.transports import EventTransport, InMemoryTransport
from tests.factories.builders import DroppingTransport, RefusingTransport

VENUE = "01HVENUE0000000000000000AA"
OTHER_VENUE = "01HVENUE0000000000000000BB"
ROOM_A = "01HACTIVITY00000000000000A"
ROOM_B = "01HACTIVITY00000000000000B"

WINDOW = 0.05


class SlowTransport(EventTransport):
    async def publish(self, channel, payload):
        return None

    async def listen(self, channel, callback, on_error=None):
        await asyncio.sleep(5)


@pytest.fixture
def transport():
    return InMemoryTransport()


@pytest.fixture
def debounced_bus(transport):
    return RealtimeInvalidationBus(transport, debounce_seconds=WINDOW)


async def _publish_reservation(bus, event_type, activity_id=ROOM_A, venue_id=VENUE):
    await bus.publish_change(
        "reservations", event_type, activity_id=activity_id, venue_id=venue_id
    )


class TestDebounce:
    @pytest.mark.asyncio
    async def test_burst_collapses_into_one_notice(self, debounced_bus):
        # Setup
        notices = []
        subscription = await debounced_bus.subscribe(
            SubscriptionScope.activity(ROOM_A), notices.append
        )

        # Execute
        await _publish_reservation(debounced_bus, ChangeEventType.INSERT)
        await _publish_reservation(debounced_bus, ChangeEventType.UPDATE)
        await _publish_reservation(debounced_bus, ChangeEventType.UPDATE)

        # Assert
        assert subscription.has_pending_notification
        assert notices == []

        await asyncio.sleep(WINDOW * 3)

        assert len(notices) == 1
        assert notices[0].coalesced == 3
        assert notices[0].event_type == ChangeEventType.UPDATE
        assert notices[0].scope_id == ROOM_A
        assert not subscription.has_pending_notification

    @pytest.mark.asyncio
    async def test_events_after_quiet_window_are_separate(self, debounced_bus):
        notices = []
        await debounced_bus.subscribe(SubscriptionScope.activity(ROOM_A), notices.append)

        await _publish_reservation(debounced_bus, ChangeEventType.INSERT)
        await asyncio.sleep(WINDOW * 3)
        await _publish_reservation(debounced_bus, ChangeEventType.DELETE)
        await asyncio.sleep(WINDOW * 3)

        assert [notice.event_type for notice in notices] == [
            ChangeEventType.INSERT,
            ChangeEventType.DELETE,
        ]

    @pytest.mark.asyncio
    async def test_each_subscriber_has_its_own_timer(self, debounced_bus):
        slow, fast = [], []
        await debounced_bus.subscribe(SubscriptionScope.activity(ROOM_A), slow.append)
        await debounced_bus.subscribe(
            SubscriptionScope.activity(ROOM_A), fast.append, debounce_seconds=0
        )

        await _publish_reservation(debounced_bus, ChangeEventType.INSERT)

        assert len(fast) == 1
        assert slow == []
        await asyncio.sleep(WINDOW * 3)
        assert len(slow) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_cancels_pending_notice(self, debounced_bus, transport):
        # Setup
        notices = []
        subscription = await debounced_bus.subscribe(
            SubscriptionScope.activity(ROOM_A), notices.append
        )
        await _publish_reservation(debounced_bus, ChangeEventType.INSERT)

        # Execute
        await debounced_bus.unsubscribe(subscription)
        await asyncio.sleep(WINDOW * 3)

        # Assert
        assert notices == []
        assert subscription.state == ConnectionState.CLOSED
        assert debounced_bus.subscription_count == 0
        assert transport.listener_count() == 0


class TestScopes:
    @pytest.mark.asyncio
    async def test_activity_scope_ignores_other_activities(self, bus):
        notices = []
        await bus.subscribe(SubscriptionScope.activity(ROOM_A), notices.append)

        await _publish_reservation(bus, ChangeEventType.INSERT, activity_id=ROOM_B)

        assert notices == []

    @pytest.mark.asyncio
    async def test_venue_scope_sees_every_activity_in_venue(self, bus):
        notices = []
        await bus.subscribe(SubscriptionScope.venue(VENUE), notices.append)

        await _publish_reservation(bus, ChangeEventType.INSERT, activity_id=ROOM_A)
        await _publish_reservation(bus, ChangeEventType.INSERT, activity_id=ROOM_B)
        await _publish_reservation(bus, ChangeEventType.INSERT, venue_id=OTHER_VENUE)

        assert len(notices) == 2
        assert {notice.scope_id for notice in notices} == {VENUE}
        assert notices[0].scope.kind == ScopeKind.VENUE

    @pytest.mark.asyncio
    async def test_global_scope_sees_everything(self, bus):
        notices = []
        await bus.subscribe(SubscriptionScope.all(), notices.append)

        await _publish_reservation(bus, ChangeEventType.INSERT, activity_id=ROOM_A)
        await _publish_reservation(bus, ChangeEventType.INSERT, venue_id=OTHER_VENUE)

        assert len(notices) == 2

    @pytest.mark.asyncio
    async def test_notice_carries_no_row_data(self, bus):
        notices = []
        await bus.subscribe(SubscriptionScope.activity(ROOM_A), notices.append)

        await _publish_reservation(bus, ChangeEventType.UPDATE)

        assert notices[0].to_dict() == {
            "table": "reservations",
            "event_type": "update",
            "scope_id": ROOM_A,
            "scope": "activity",
            "coalesced": 1,
        }


class TestConnectionState:
    @pytest.mark.asyncio
    async def test_state_transitions_are_reported(self, bus):
        states = []
        subscription = await bus.subscribe(
            SubscriptionScope.activity(ROOM_A), lambda notice: None, on_state_change=states.append
        )

        assert subscription.is_live
        await bus.unsubscribe(subscription)

        assert states == [
            ConnectionState.CONNECTING,
            ConnectionState.SUBSCRIBED,
            ConnectionState.CLOSED,
        ]

    @pytest.mark.asyncio
    async def test_transport_error_does_not_raise(self):
        bus = RealtimeInvalidationBus(RefusingTransport(), debounce_seconds=0)

        subscription = await bus.subscribe(SubscriptionScope.activity(ROOM_A), lambda n: None)

        assert subscription.state == ConnectionState.ERROR
        assert isinstance(subscription.error, ConnectionError)
        assert not subscription.is_live
        assert bus.subscription_count == 0

    @pytest.mark.asyncio
    async def test_slow_transport_times_out(self):
        bus = RealtimeInvalidationBus(
            SlowTransport(), debounce_seconds=0, subscribe_timeout_seconds=0.01
        )
        states = []

        subscription = await bus.subscribe(
            SubscriptionScope.venue(VENUE), lambda n: None, on_state_change=states.append
        )

        assert subscription.state == ConnectionState.TIMED_OUT
        assert states == [ConnectionState.CONNECTING, ConnectionState.TIMED_OUT]

    @pytest.mark.asyncio
    async def test_dropped_channel_moves_live_subscription_to_error(self):
        # Setup
        transport = DroppingTransport()
        bus = RealtimeInvalidationBus(transport, debounce_seconds=0)
        states, notices = [], []
        subscription = await bus.subscribe(
            SubscriptionScope.activity(ROOM_A), notices.append, on_state_change=states.append
        )
        assert subscription.is_live

        # Execute
        transport.drop()
        await _publish_reservation(bus, ChangeEventType.INSERT)

        # Assert
        assert subscription.state == ConnectionState.ERROR
        assert not subscription.is_live
        assert isinstance(subscription.error, ConnectionError)
        assert states[-1] == ConnectionState.ERROR
        assert notices == []


class TestDelivery:
    @pytest.mark.asyncio
    async def test_async_callbacks_are_awaited(self, bus):
        received = asyncio.Event()

        async def on_event(notice):
            received.set()

        await bus.subscribe(SubscriptionScope.activity(ROOM_A), on_event)
        await _publish_reservation(bus, ChangeEventType.INSERT)

        await asyncio.wait_for(received.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_affect_others(self, bus):
        def explode(notice):
            raise RuntimeError("widget crashed")

        notices = []
        await bus.subscribe(SubscriptionScope.activity(ROOM_A), explode)
        await bus.subscribe(SubscriptionScope.activity(ROOM_A), notices.append)

        await _publish_reservation(bus, ChangeEventType.INSERT)

        assert len(notices) == 1

    @pytest.mark.asyncio
    async def test_close_releases_all_subscriptions(self, bus):
        first = await bus.subscribe(SubscriptionScope.activity(ROOM_A), lambda n: None)
        second = await bus.subscribe(SubscriptionScope.venue(VENUE), lambda n: None)

        await bus.close()

        assert bus.subscription_count == 0
        assert first.state == second.state == ConnectionState.CLOSED

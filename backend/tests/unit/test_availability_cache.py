from datetime import date

import pytest

from bookflow.realtime.events import (
    ChangeEventType,
    ConnectionState,
    InvalidationNotice,
    SubscriptionScope,
)
from bookflow.realtime.invalidation_bus import RealtimeInvalidationBus
from bookflow.services.availability_cache import AvailabilityCache
from tests.factories.builders import DroppingTransport, RefusingTransport

DAY = date(2026, 3, 9)
NEXT_DAY = date(2026, 3, 10)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return AvailabilityCache(ttl_seconds=30, clock=clock)


def _notice(scope, scope_id):
    return InvalidationNotice(
        table="reservations", event_type=ChangeEventType.INSERT, scope_id=scope_id, scope=scope
    )


class TestAvailabilityCache:
    def test_hit_before_expiry(self, cache, clock):
        cache.set("room-a", DAY, ("slots",))
        clock.now += 29

        assert cache.get("room-a", DAY) == ("slots",)
        assert cache.hits == 1

    def test_expires_after_ttl(self, cache, clock):
        cache.set("room-a", DAY, ("slots",))
        clock.now += 30

        assert cache.get("room-a", DAY) is None
        assert len(cache) == 0

    def test_disabled_when_ttl_is_zero(self, clock):
        cache = AvailabilityCache(ttl_seconds=0, clock=clock)
        cache.set("room-a", DAY, ("slots",))

        assert cache.enabled is False
        assert cache.get("room-a", DAY) is None

    def test_invalidate_activity_drops_every_day(self, cache):
        cache.set("room-a", DAY, 1)
        cache.set("room-a", NEXT_DAY, 2)
        cache.set("room-b", DAY, 3)

        assert cache.invalidate_activity("room-a") == 2
        assert cache.get("room-b", DAY) == 3

    def test_venue_notice_drops_venue_entries(self, cache):
        cache.set("room-a", DAY, 1, venue_id="venue-1")
        cache.set("room-b", DAY, 2, venue_id="venue-2")

        cache.handle_notice(_notice(SubscriptionScope.venue("venue-1"), "venue-1"))

        assert cache.get("room-a", DAY) is None
        assert cache.get("room-b", DAY) == 2

    def test_global_notice_uses_changed_activity(self, cache):
        cache.set("room-a", DAY, 1, venue_id="venue-1")
        cache.set("room-b", DAY, 2, venue_id="venue-1")

        cache.handle_notice(_notice(SubscriptionScope.all(), "room-a"))

        assert cache.get("room-a", DAY) is None
        assert cache.get("room-b", DAY) == 2

    @pytest.mark.asyncio
    async def test_attached_cache_follows_bus(self, cache, bus):
        await cache.attach(bus)
        cache.set("room-a", DAY, 1, venue_id="venue-1")

        await bus.publish_change(
            "reservations", ChangeEventType.UPDATE, activity_id="room-a", venue_id="venue-1"
        )

        assert cache.get("room-a", DAY) is None
        await cache.detach(bus)
        assert bus.subscription_count == 0


class TestBusState:
    @pytest.mark.asyncio
    async def test_subscription_that_never_went_live_bypasses_cache(self, cache):
        bus = RealtimeInvalidationBus(RefusingTransport(), debounce_seconds=0)

        subscription = await cache.attach(bus)
        cache.set("room-a", DAY, 1)

        assert subscription.state == ConnectionState.ERROR
        assert cache.serving is False
        assert cache.get("room-a", DAY) is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_dropped_subscription_clears_and_stops_serving(self, cache):
        # Setup
        transport = DroppingTransport()
        bus = RealtimeInvalidationBus(transport, debounce_seconds=0)
        await cache.attach(bus)
        cache.set("room-a", DAY, 1)
        assert cache.get("room-a", DAY) == 1

        # Execute
        transport.drop()
        cache.set("room-b", DAY, 2)

        # Assert
        assert cache.serving is False
        assert len(cache) == 0
        assert cache.get("room-a", DAY) is None

    def test_unattached_cache_serves(self, cache):
        assert cache.serving is True

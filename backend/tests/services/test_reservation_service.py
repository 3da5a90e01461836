# backend/tests/services/test_reservation_service.py
"""
Tests for ReservationService: the create-then-pay flow, commit-time
conflicts, the status lifecycle, gift card holds and discount redemption
on payment.
"""

from datetime import date, datetime, time

import pytest

from bookflow.core.exceptions import (
    AvailabilityConflictException,
    InvalidStatusTransitionException,
    NotFoundException,
    PaymentGatewayException,
    ValidationException,
)
from bookflow.models.customer import Customer
from bookflow.models.gift_card import GiftCard, GiftCardRedemption
from bookflow.models.promo_code import PromoCode
from bookflow.models.reservation import Reservation
from bookflow.realtime.events import ChangeEventType, SubscriptionScope
from bookflow.realtime.invalidation_bus import RealtimeInvalidationBus
from bookflow.services.availability_cache import AvailabilityCache
from bookflow.services.availability_service import AvailabilityService, SlotReason
from bookflow.services.pricing_service import PricingService, TicketLine
from bookflow.services.reservation_service import ReservationRequest, ReservationService
from tests.factories.builders import (
    MONDAY,
    TUESDAY,
    FakePaymentGateway,
    RefusingTransport,
    fixed_clock,
    make_activity,
    make_gift_card,
    make_promo,
)


@pytest.fixture
def activity(db):
    return make_activity(db, unit_price_cents=2500)


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def service(db, gateway, bus):
    return ReservationService(
        db,
        pricing_service=PricingService(db, clock=fixed_clock),
        payment_gateway=gateway,
        bus=bus,
        clock=fixed_clock,
    )


def _request(activity, **overrides) -> ReservationRequest:
    fields = {
        "activity_id": activity.id,
        "booking_date": MONDAY,
        "start_time": "10:00",
        "party_size": 2,
        "customer_email": "guest@example.com",
        "customer_name": "Guest User",
    }
    fields.update(overrides)
    return ReservationRequest(**fields)


class TestCreateReservationWithPayment:
    @pytest.mark.asyncio
    async def test_happy_path(self, service, gateway, activity):
        # Execute
        result = await service.create_reservation_with_payment(_request(activity))

        # Assert
        assert result.status == "pending"
        assert result.payment_status == "pending"
        assert result.amount_cents == 5000
        assert result.payment_intent_id == "pi_test_1"
        assert result.payment_client_secret == "pi_test_1_secret"
        assert result.confirmation_code.startswith("BK-")
        assert gateway.intents == [
            {"reservation_id": result.reservation_id, "amount_cents": 5000, "currency": "usd"}
        ]

        stored = await service.get_reservation(result.reservation_id)
        assert stored.start_time == time(10, 0)
        assert stored.end_time == time(11, 0)
        assert stored.payment_intent_id == "pi_test_1"

    @pytest.mark.asyncio
    async def test_slot_is_taken_after_commit(self, db, service, activity):
        availability = AvailabilityService(db)
        assert await availability.is_slot_available(activity.id, MONDAY, "10:00", "11:00")

        await service.create_reservation_with_payment(_request(activity))

        assert not await availability.is_slot_available(activity.id, MONDAY, "10:00", "11:00")

    @pytest.mark.asyncio
    async def test_second_booking_of_same_slot_conflicts(self, service, activity):
        await service.create_reservation_with_payment(_request(activity))

        with pytest.raises(AvailabilityConflictException) as exc_info:
            await service.create_reservation_with_payment(
                _request(activity, customer_email="other@example.com")
            )
        assert exc_info.value.code == "SLOT_UNAVAILABLE"
        assert exc_info.value.details["start_time"] == "10:00"

    @pytest.mark.asyncio
    async def test_overlapping_start_conflicts(self, db, service):
        activity = make_activity(db, slot_interval_minutes=30)
        await service.create_reservation_with_payment(_request(activity, start_time="10:00"))

        with pytest.raises(AvailabilityConflictException):
            await service.create_reservation_with_payment(_request(activity, start_time="10:30"))

    @pytest.mark.asyncio
    async def test_payment_failure_leaves_reservation_pending(self, service, gateway, activity):
        # Setup
        gateway.fail = True

        # Execute
        with pytest.raises(PaymentGatewayException) as exc_info:
            await service.create_reservation_with_payment(_request(activity))

        # Assert
        reservation_id = exc_info.value.reservation_id
        assert reservation_id is not None
        assert exc_info.value.details["reservation_id"] == reservation_id
        stored = await service.get_reservation(reservation_id)
        assert stored.status == "pending"
        assert stored.payment_intent_id is None

    @pytest.mark.asyncio
    async def test_retry_payment_after_failure(self, service, gateway, activity):
        gateway.fail = True
        with pytest.raises(PaymentGatewayException) as exc_info:
            await service.create_reservation_with_payment(_request(activity))

        gateway.fail = False
        result = await service.retry_payment(exc_info.value.reservation_id)

        assert result.payment_intent_id == "pi_test_1"
        assert result.status == "pending"

    @pytest.mark.asyncio
    async def test_each_payment_attempt_is_numbered(self, service, gateway, activity):
        """A retry must not reuse the failed attempt's idempotency key."""
        # Setup
        gateway.fail = True
        with pytest.raises(PaymentGatewayException) as exc_info:
            await service.create_reservation_with_payment(_request(activity))
        with pytest.raises(PaymentGatewayException):
            await service.retry_payment(exc_info.value.reservation_id)

        # Execute
        gateway.fail = False
        await service.retry_payment(exc_info.value.reservation_id)

        # Assert
        assert gateway.attempts == [1, 2, 3]
        stored = await service.get_reservation(exc_info.value.reservation_id)
        assert stored.payment_attempts == 3

    @pytest.mark.asyncio
    async def test_retry_payment_rejected_once_confirmed(self, service, activity):
        result = await service.create_reservation_with_payment(_request(activity))
        await service.update_reservation_status(result.reservation_id, "confirmed", "paid")

        with pytest.raises(ValidationException) as exc_info:
            await service.retry_payment(result.reservation_id)
        assert exc_info.value.code == "PAYMENT_NOT_RETRYABLE"

    @pytest.mark.asyncio
    async def test_discounts_are_stacked_and_snapshotted(self, db, service, gateway, activity):
        # Setup
        make_promo(db, "SAVE20", discount_value=20, max_discount_cents=5000)
        make_gift_card(db, "GC-DEMO-5000", original_value_cents=5000, remaining_balance_cents=5000)

        # Execute
        result = await service.create_reservation_with_payment(
            _request(activity, party_size=4, promo_code="save20", gift_card_code="gc-demo-5000")
        )

        # Assert
        stored = await service.get_reservation(result.reservation_id)
        assert stored.subtotal_cents == 10000
        assert stored.promo_code == "SAVE20"
        assert stored.promo_discount_cents == 2000
        assert stored.gift_card_code == "GC-DEMO-5000"
        assert stored.gift_card_credit_cents == 5000
        assert stored.final_amount_cents == 3000
        assert gateway.intents[0]["amount_cents"] == 3000

    @pytest.mark.asyncio
    async def test_fully_covered_reservation_confirms_without_payment(
        self, db, service, gateway, activity
    ):
        # Setup
        card = make_gift_card(db, "GC-BIG")

        # Execute
        result = await service.create_reservation_with_payment(
            _request(activity, gift_card_code="GC-BIG")
        )

        # Assert
        assert result.amount_cents == 0
        assert result.status == "confirmed"
        assert result.payment_status == "paid"
        assert result.payment_intent_id is None
        assert gateway.intents == []
        db.refresh(card)
        assert card.remaining_balance_cents == 5000
        assert card.status == "partially_used"

    @pytest.mark.asyncio
    async def test_invalid_promo_code_rejects_request(self, service, activity):
        with pytest.raises(ValidationException) as exc_info:
            await service.create_reservation_with_payment(_request(activity, promo_code="NOPE"))

        assert exc_info.value.code == "INVALID_DISCOUNT"

    @pytest.mark.asyncio
    async def test_ticket_lines_price_the_reservation(self, service, gateway, activity):
        result = await service.create_reservation_with_payment(
            _request(
                activity,
                party_size=3,
                ticket_lines=[TicketLine(3000, 1, "Adult"), TicketLine(1000, 2, "Child")],
            )
        )

        assert result.amount_cents == 5000

    @pytest.mark.asyncio
    async def test_customer_reused_by_email(self, db, service, activity):
        first = await service.create_reservation_with_payment(
            _request(activity, customer_email="Guest@Example.com")
        )
        second = await service.create_reservation_with_payment(
            _request(activity, start_time="12:00", customer_email="guest@example.com ")
        )

        a = await service.get_reservation(first.reservation_id)
        b = await service.get_reservation(second.reservation_id)
        assert a.customer_id == b.customer_id
        assert db.query(Customer).count() == 1

    @pytest.mark.asyncio
    async def test_past_date_rejected(self, service, activity):
        with pytest.raises(ValidationException) as exc_info:
            await service.create_reservation_with_payment(
                _request(activity, booking_date=date(2026, 3, 1))
            )
        assert exc_info.value.code == "DATE_IN_PAST"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("party_size", [0, 9])
    async def test_party_size_bounds(self, service, activity, party_size):
        with pytest.raises(ValidationException) as exc_info:
            await service.create_reservation_with_payment(_request(activity, party_size=party_size))
        assert exc_info.value.code == "INVALID_PARTY_SIZE"

    @pytest.mark.asyncio
    async def test_end_time_must_match_duration(self, service, activity):
        with pytest.raises(ValidationException) as exc_info:
            await service.create_reservation_with_payment(
                _request(activity, end_time="11:30")
            )
        assert exc_info.value.code == "INVALID_TIME_RANGE"

    @pytest.mark.asyncio
    async def test_unknown_activity(self, service, activity):
        with pytest.raises(NotFoundException):
            await service.create_reservation_with_payment(
                _request(activity, activity_id="01HNOTAREALACTIVITY0000000")
            )

    @pytest.mark.asyncio
    async def test_insert_is_published(self, service, bus, activity):
        # Setup
        notices = []
        await bus.subscribe(SubscriptionScope.activity(activity.id), notices.append)

        # Execute
        await service.create_reservation_with_payment(_request(activity))

        # Assert
        assert len(notices) == 1
        assert notices[0].table == "reservations"
        assert notices[0].event_type == ChangeEventType.INSERT
        assert notices[0].scope_id == activity.id


async def _book(service, activity) -> str:
    result = await service.create_reservation_with_payment(_request(activity))
    return result.reservation_id


class TestReservationLifecycle:
    @pytest.mark.asyncio
    async def test_confirm_then_complete(self, service, activity):
        reservation_id = await _book(service, activity)
        confirmed = await service.update_reservation_status(reservation_id, "confirmed", "paid")
        completed = await service.update_reservation_status(reservation_id, "completed")

        assert confirmed.confirmed_at is not None
        assert confirmed.discounts_redeemed_at is not None
        assert completed.status == "completed"
        assert completed.payment_status == "paid"

    @pytest.mark.asyncio
    async def test_completed_cannot_be_canceled(self, service, activity):
        reservation_id = await _book(service, activity)
        await service.update_reservation_status(reservation_id, "confirmed", "paid")
        await service.update_reservation_status(reservation_id, "completed")

        with pytest.raises(InvalidStatusTransitionException):
            await service.cancel_reservation(reservation_id)

    @pytest.mark.asyncio
    async def test_pending_cannot_jump_to_completed(self, service, activity):
        reservation_id = await _book(service, activity)
        with pytest.raises(InvalidStatusTransitionException) as exc_info:
            await service.update_reservation_status(reservation_id, "completed")
        assert exc_info.value.details == {
            "current_status": "pending",
            "requested_status": "completed",
        }

    @pytest.mark.asyncio
    async def test_unknown_status_value(self, service, activity):
        reservation_id = await _book(service, activity)
        with pytest.raises(ValidationException) as exc_info:
            await service.update_reservation_status(reservation_id, "archived")
        assert exc_info.value.code == "INVALID_STATUS"

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent_and_frees_slot(self, db, service, activity):
        reservation_id = await _book(service, activity)
        first = await service.cancel_reservation(reservation_id, reason="  plans changed  ")
        second = await service.cancel_reservation(reservation_id)

        assert first.status == second.status == "canceled"
        assert first.cancellation_reason == "plans changed"
        assert await AvailabilityService(db).is_slot_available(
            activity.id, MONDAY, "10:00", "11:00"
        )

    @pytest.mark.asyncio
    async def test_slot_can_be_rebooked_after_cancel(self, service, activity):
        reservation_id = await _book(service, activity)
        await service.cancel_reservation(reservation_id)

        result = await service.create_reservation_with_payment(
            _request(activity, customer_email="next@example.com")
        )

        assert result.status == "pending"

    @pytest.mark.asyncio
    async def test_paid_redeems_discounts_once(self, db, service, activity):
        # Setup
        make_promo(db, "WELCOME10", discount_value=10)
        make_gift_card(db, "GC-PART", original_value_cents=2000, remaining_balance_cents=2000)
        created = await service.create_reservation_with_payment(
            _request(
                activity,
                booking_date=TUESDAY,
                party_size=4,
                promo_code="WELCOME10",
                gift_card_code="GC-PART",
            )
        )

        # Execute
        await service.update_reservation_status(created.reservation_id, "confirmed", "paid")
        await service.update_reservation_status(created.reservation_id, "completed", "paid")

        # Assert
        promo = db.query(PromoCode).filter_by(code="WELCOME10").one()
        card = db.query(GiftCard).filter_by(code="GC-PART").one()
        db.refresh(promo)
        db.refresh(card)
        assert promo.uses_count == 1
        assert card.remaining_balance_cents == 0
        assert card.status == "fully_used"

    @pytest.mark.asyncio
    async def test_unknown_reservation(self, service):
        with pytest.raises(NotFoundException):
            await service.cancel_reservation("01HNOTAREALRESERVATION0000")


class TestGiftCardHold:
    @pytest.mark.asyncio
    async def test_pending_reservations_cannot_share_one_balance(self, db, service, activity):
        # Setup
        card = make_gift_card(
            db, "GC-SHARED", original_value_cents=3000, remaining_balance_cents=3000
        )
        first = await service.create_reservation_with_payment(
            _request(activity, gift_card_code="GC-SHARED")
        )

        # Execute
        with pytest.raises(ValidationException) as exc_info:
            await service.create_reservation_with_payment(
                _request(
                    activity,
                    booking_date=TUESDAY,
                    customer_email="other@example.com",
                    gift_card_code="GC-SHARED",
                )
            )

        # Assert
        assert exc_info.value.code == "INVALID_DISCOUNT"
        assert first.amount_cents == 2000
        db.refresh(card)
        assert card.remaining_balance_cents == 0
        assert card.status == "fully_used"
        assert db.query(Reservation).count() == 1

    @pytest.mark.asyncio
    async def test_card_drained_after_quote_cancels_the_insert(
        self, db, service, gateway, activity, monkeypatch
    ):
        # Setup
        card = make_gift_card(
            db, "GC-RACE", original_value_cents=3000, remaining_balance_cents=3000
        )
        build_quote = service.pricing_service.build_quote

        async def quote_then_drain(*args, **kwargs):
            quote = await build_quote(*args, **kwargs)
            card.remaining_balance_cents = 0
            card.status = "fully_used"
            db.commit()
            return quote

        monkeypatch.setattr(service.pricing_service, "build_quote", quote_then_drain)

        # Execute
        with pytest.raises(ValidationException) as exc_info:
            await service.create_reservation_with_payment(
                _request(activity, gift_card_code="GC-RACE")
            )

        # Assert
        assert exc_info.value.code == "INVALID_DISCOUNT"
        assert exc_info.value.details["gift_card_code"] == "GC-RACE"
        stored = db.query(Reservation).one()
        assert stored.status == "canceled"
        assert gateway.intents == []
        assert await AvailabilityService(db).is_slot_available(
            activity.id, MONDAY, "10:00", "11:00"
        )

    @pytest.mark.asyncio
    async def test_cancel_unpaid_reservation_restores_balance(self, db, service, activity):
        # Setup
        card = make_gift_card(
            db, "GC-BACK", original_value_cents=3000, remaining_balance_cents=3000
        )
        created = await service.create_reservation_with_payment(
            _request(activity, gift_card_code="GC-BACK")
        )

        # Execute
        await service.cancel_reservation(created.reservation_id)
        await service.cancel_reservation(created.reservation_id)

        # Assert
        db.refresh(card)
        assert card.remaining_balance_cents == 3000
        assert card.status == "active"
        assert db.query(GiftCardRedemption).count() == 0

    @pytest.mark.asyncio
    async def test_released_credit_can_be_spent_again(self, db, service, activity):
        make_gift_card(db, "GC-AGAIN", original_value_cents=3000, remaining_balance_cents=3000)
        created = await service.create_reservation_with_payment(
            _request(activity, gift_card_code="GC-AGAIN")
        )
        await service.update_reservation_status(created.reservation_id, "canceled")

        second = await service.create_reservation_with_payment(
            _request(activity, booking_date=TUESDAY, gift_card_code="GC-AGAIN")
        )

        assert second.amount_cents == 2000

    @pytest.mark.asyncio
    async def test_cancel_after_payment_keeps_debit(self, db, service, activity):
        # Setup
        card = make_gift_card(
            db, "GC-KEPT", original_value_cents=3000, remaining_balance_cents=3000
        )
        created = await service.create_reservation_with_payment(
            _request(activity, gift_card_code="GC-KEPT")
        )
        await service.update_reservation_status(created.reservation_id, "confirmed", "paid")

        # Execute
        await service.cancel_reservation(created.reservation_id)

        # Assert
        db.refresh(card)
        assert card.remaining_balance_cents == 0
        assert db.query(GiftCardRedemption).count() == 1


class TestCachedListings:
    @staticmethod
    def _clock():
        return datetime(2026, 3, 2, 8, 0)

    @pytest.mark.asyncio
    async def test_booking_drops_local_cached_day(self, db, gateway, bus, activity):
        # Setup
        cache = AvailabilityCache(ttl_seconds=300)
        availability = AvailabilityService(db, cache=cache, clock=self._clock)
        service = ReservationService(
            db,
            pricing_service=PricingService(db, clock=fixed_clock),
            payment_gateway=gateway,
            bus=bus,
            cache=cache,
            clock=fixed_clock,
        )
        before = await availability.get_available_slots(activity.id, MONDAY)
        assert before[0].available is True

        # Execute
        await service.create_reservation_with_payment(_request(activity, start_time="09:00"))
        after = await availability.get_available_slots(activity.id, MONDAY)

        # Assert
        assert after[0].available is False
        assert after[0].reason == SlotReason.BOOKED

    @pytest.mark.asyncio
    async def test_cache_on_dead_bus_never_serves_stale_slots(self, db, service, activity):
        # Setup
        cache = AvailabilityCache(ttl_seconds=300)
        await cache.attach(RealtimeInvalidationBus(RefusingTransport(), debounce_seconds=0))
        availability = AvailabilityService(db, cache=cache, clock=self._clock)
        await availability.get_available_slots(activity.id, MONDAY)

        # Execute
        await service.create_reservation_with_payment(_request(activity, start_time="09:00"))
        after = await availability.get_available_slots(activity.id, MONDAY)

        # Assert
        assert after[0].available is False
        assert len(cache) == 0

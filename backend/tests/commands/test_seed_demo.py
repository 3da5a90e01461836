from datetime import time

import pytest

from bookflow.commands.seed_demo import DEMO_ACTIVITY_NAME, parse_args, seed
from bookflow.models.activity import Activity
from bookflow.models.gift_card import GiftCard
from bookflow.models.promo_code import PromoCode
from bookflow.services.pricing_service import PricingService
from bookflow.services.slot_generator import OperatingSchedule, generate_slots
from tests.factories.builders import SUNDAY, TUESDAY, VENUE_ID, fixed_clock


class TestSeedDemo:
    def test_seed_is_idempotent(self, db):
        first = seed(db, VENUE_ID)
        second = seed(db, "01HOTHERVENUE0000000000000")

        assert first.id == second.id
        assert db.query(Activity).filter_by(name=DEMO_ACTIVITY_NAME).count() == 1
        assert db.query(PromoCode).count() == 3
        assert db.query(GiftCard).count() == 3

    def test_demo_schedule(self, db):
        activity = seed(db, VENUE_ID)
        schedule = OperatingSchedule.from_activity(activity)

        weekday = [slot.start for slot in generate_slots(schedule, TUESDAY)]
        sunday = [slot.start for slot in generate_slots(schedule, SUNDAY)]

        assert weekday[0] == time(10, 0)
        assert weekday[-1] == time(20, 30)
        assert len(weekday) == 8
        assert sunday == [time(12, 0), time(13, 30), time(15, 0), time(16, 30)]

    @pytest.mark.asyncio
    async def test_demo_codes_price_as_documented(self, db):
        seed(db, VENUE_ID)
        pricing = PricingService(db, clock=fixed_clock)

        quote = await pricing.build_quote(10000, promo_code="SAVE20", gift_card_code="GC-DEMO-5000")
        half = await pricing.apply_gift_card("GC-HALF-2500", 5000)

        assert quote.final_amount_cents == 3000
        assert half.amount_applied_cents == 2500
        assert half.remaining_after_cents == 0

    def test_parse_args(self):
        args = parse_args(["--reset", "--venue-id", VENUE_ID])

        assert args.reset is True
        assert args.venue_id == VENUE_ID

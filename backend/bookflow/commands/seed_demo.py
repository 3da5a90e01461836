#!/usr/bin/env python3
"""
seed_demo.py - load a demo activity, promo codes and gift cards.

Idempotent: rows whose code (or activity name) already exists are left
alone. Use --reset to drop and recreate every table first.

    bookflow-seed-demo [--reset] [--venue-id VENUE]
"""

from __future__ import annotations

import argparse
from datetime import time
import logging
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.ulid_helper import generate_ulid
from ..database import Base, SessionLocal, engine
from ..models.activity import Activity
from ..models.gift_card import GiftCard, GiftCardStatus
from ..models.promo_code import DiscountType, PromoCode

logger = logging.getLogger("seed_demo")

DEMO_ACTIVITY_NAME = "Escape Room: The Vault"

DEMO_PROMO_CODES = [
    {
        "code": "WELCOME10",
        "description": "10% off your first booking",
        "discount_type": DiscountType.PERCENTAGE.value,
        "discount_value": 10,
    },
    {
        "code": "SAVE20",
        "description": "20% off, up to $50",
        "discount_type": DiscountType.PERCENTAGE.value,
        "discount_value": 20,
        "max_discount_cents": 5000,
    },
    {
        "code": "FLAT25",
        "description": "$25 off orders of $50 or more",
        "discount_type": DiscountType.FIXED.value,
        "discount_value": 2500,
        "min_order_cents": 5000,
    },
]

DEMO_GIFT_CARDS = [
    {"code": "GC-DEMO-1000", "original_value_cents": 10000, "remaining_balance_cents": 10000},
    {"code": "GC-DEMO-5000", "original_value_cents": 5000, "remaining_balance_cents": 5000},
    {
        "code": "GC-HALF-2500",
        "original_value_cents": 5000,
        "remaining_balance_cents": 2500,
        "status": GiftCardStatus.PARTIALLY_USED.value,
    },
]


def seed_activity(db: Session, venue_id: str) -> Activity:
    existing = db.query(Activity).filter(Activity.name == DEMO_ACTIVITY_NAME).first()
    if existing is not None:
        logger.info("Activity already present: %s (%s)", existing.name, existing.id)
        return existing

    activity = Activity(
        venue_id=venue_id,
        name=DEMO_ACTIVITY_NAME,
        description="Sixty minutes to crack the vault. Up to eight players.",
        duration_minutes=60,
        operating_days=["tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"],
        open_time=time(10, 0),
        close_time=time(22, 0),
        slot_interval_minutes=90,
        custom_hours={
            "sunday": {"enabled": True, "start_time": "12:00", "end_time": "18:00"},
        },
        advance_booking_days=60,
        min_party_size=2,
        max_party_size=8,
        unit_price_cents=3500,
        currency="usd",
    )
    db.add(activity)
    db.flush()
    logger.info("Created activity %s (%s)", activity.name, activity.id)
    return activity


def seed_promo_codes(db: Session) -> List[str]:
    created = []
    for promo in DEMO_PROMO_CODES:
        if db.query(PromoCode).filter(PromoCode.code == promo["code"]).first() is not None:
            continue
        db.add(PromoCode(**promo))
        created.append(promo["code"])
    return created


def seed_gift_cards(db: Session) -> List[str]:
    created = []
    for card in DEMO_GIFT_CARDS:
        if db.query(GiftCard).filter(GiftCard.code == card["code"]).first() is not None:
            continue
        db.add(GiftCard(**card))
        created.append(card["code"])
    return created


def seed(db: Session, venue_id: Optional[str] = None) -> Activity:
    activity = seed_activity(db, venue_id or generate_ulid())
    promos = seed_promo_codes(db)
    cards = seed_gift_cards(db)
    db.commit()
    logger.info("Seeded promo codes: %s", ", ".join(promos) or "none")
    logger.info("Seeded gift cards: %s", ", ".join(cards) or "none")
    return activity


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed demo data for the reservation engine")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate all tables first")
    parser.add_argument("--venue-id", default=None, help="Venue id for the demo activity")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    args = parse_args(argv)

    import bookflow.models  # noqa: F401

    if args.reset:
        logger.warning("Dropping all tables on %s", engine.url.render_as_string(hide_password=True))
        Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        activity = seed(db, args.venue_id)
    finally:
        db.close()

    print(f"Demo activity: {activity.name} id={activity.id} venue={activity.venue_id}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""
Reservation model for the Bookflow engine.

A reservation is a customer's claim on one slot of one activity. It is
self-contained: activity, date, times and amounts are stored on the row
so pricing history survives later schedule or price edits.

Double booking is guarded in storage. The partial unique index below
covers identical starts on every dialect; PostgreSQL additionally gets
an exclusion constraint over the time range (see alembic revision
002_reservation_overlap_exclusion).
"""

from enum import Enum
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class ReservationStatus(str, Enum):
    """Reservation lifecycle statuses."""

    PENDING = "pending"  # Created, awaiting payment
    CONFIRMED = "confirmed"  # Payment succeeded
    COMPLETED = "completed"  # Session took place
    CANCELED = "canceled"  # Slot released


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


# Allowed lifecycle edges; staying in place is always a no-op.
ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELED}),
    ReservationStatus.CONFIRMED: frozenset(
        {ReservationStatus.COMPLETED, ReservationStatus.CANCELED}
    ),
    ReservationStatus.COMPLETED: frozenset(),
    ReservationStatus.CANCELED: frozenset(),
}

ACTIVE_SLOT_INDEX = "uq_reservations_active_slot"


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    confirmation_code = Column(String(16), nullable=False, unique=True)

    activity_id = Column(String(26), ForeignKey("activities.id"), nullable=False)
    venue_id = Column(String(26), nullable=False, index=True)
    customer_id = Column(String(26), ForeignKey("customers.id"), nullable=False, index=True)

    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    party_size = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False, default=ReservationStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    # Amounts in cents, snapshotted at creation
    subtotal_cents = Column(Integer, nullable=False)
    promo_code = Column(String(64), nullable=True)
    promo_discount_cents = Column(Integer, nullable=False, default=0)
    gift_card_code = Column(String(64), nullable=True)
    gift_card_credit_cents = Column(Integer, nullable=False, default=0)
    final_amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")

    payment_intent_id = Column(String(255), nullable=True, comment="Stripe payment intent")
    payment_client_secret = Column(String(255), nullable=True)
    payment_attempts = Column(Integer, nullable=False, default=0)

    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    discounts_redeemed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    activity = relationship("Activity")
    customer = relationship("Customer", back_populates="reservations")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'canceled')",
            name="ck_reservations_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'refunded')",
            name="ck_reservations_payment_status",
        ),
        CheckConstraint("end_time > start_time", name="ck_reservations_time_order"),
        CheckConstraint("party_size > 0", name="ck_reservations_party_positive"),
        CheckConstraint("final_amount_cents >= 0", name="ck_reservations_final_non_negative"),
        CheckConstraint(
            "promo_discount_cents >= 0 AND gift_card_credit_cents >= 0",
            name="ck_reservations_discounts_non_negative",
        ),
        Index("ix_reservations_activity_date", "activity_id", "booking_date"),
        Index(
            ACTIVE_SLOT_INDEX,
            "activity_id",
            "booking_date",
            "start_time",
            unique=True,
            postgresql_where=text("status <> 'canceled'"),
            sqlite_where=text("status <> 'canceled'"),
        ),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = ReservationStatus.PENDING.value
        if not self.payment_status:
            self.payment_status = PaymentStatus.PENDING.value

    def __repr__(self) -> str:
        return (
            f"<Reservation {self.id}: activity={self.activity_id}, date={self.booking_date}, "
            f"time={self.start_time}-{self.end_time}, status={self.status}>"
        )

    def can_transition_to(self, new_status: ReservationStatus) -> bool:
        current = ReservationStatus(self.status)
        return new_status == current or new_status in ALLOWED_TRANSITIONS[current]


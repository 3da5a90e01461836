"""
Reservation schemas.

Times are accepted as strings so both ``14:30`` and ``2:30 PM`` reach the
service, which owns time parsing and its error messages.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import ConfigDict, EmailStr, Field

from ..core.constants import MAX_CODE_LENGTH, MAX_REASON_LENGTH
from ..models.reservation import PaymentStatus, ReservationStatus
from ._strict_base import StrictModel, StrictRequestModel
from .pricing import TicketLineIn


class CustomerIn(StrictRequestModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=32)


class ReservationCreate(StrictRequestModel):
    activity_id: str = Field(..., min_length=1, max_length=26)
    booking_date: date
    start_time: str = Field(..., description="HH:MM, HH:MM:SS or h:MM AM/PM")
    end_time: Optional[str] = Field(default=None, description="Defaults to start + duration")
    party_size: int = Field(..., ge=1)
    customer: CustomerIn
    promo_code: Optional[str] = Field(default=None, max_length=MAX_CODE_LENGTH)
    gift_card_code: Optional[str] = Field(default=None, max_length=MAX_CODE_LENGTH)
    gift_card_amount_cents: Optional[int] = Field(default=None, gt=0)
    ticket_lines: Optional[List[TicketLineIn]] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class ReservationCancel(StrictRequestModel):
    reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)


class ReservationStatusUpdate(StrictRequestModel):
    status: ReservationStatus
    payment_status: Optional[PaymentStatus] = None


class ReservationPaymentResponse(StrictModel):
    reservation_id: str
    confirmation_code: str
    payment_client_secret: Optional[str] = None
    payment_intent_id: Optional[str] = None
    amount_cents: int
    currency: str
    status: ReservationStatus
    payment_status: PaymentStatus


class ReservationResponse(StrictModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: str
    confirmation_code: str
    activity_id: str
    venue_id: str
    customer_id: str
    booking_date: date
    start_time: str
    end_time: str
    party_size: int
    status: ReservationStatus
    payment_status: PaymentStatus
    subtotal_cents: int
    promo_code: Optional[str] = None
    promo_discount_cents: int
    gift_card_code: Optional[str] = None
    gift_card_credit_cents: int
    final_amount_cents: int
    currency: str
    payment_intent_id: Optional[str] = None
    cancellation_reason: Optional[str] = None
    canceled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_reservation(cls, reservation) -> "ReservationResponse":
        return cls(
            id=reservation.id,
            confirmation_code=reservation.confirmation_code,
            activity_id=reservation.activity_id,
            venue_id=reservation.venue_id,
            customer_id=reservation.customer_id,
            booking_date=reservation.booking_date,
            start_time=reservation.start_time.strftime("%H:%M"),
            end_time=reservation.end_time.strftime("%H:%M"),
            party_size=reservation.party_size,
            status=reservation.status,
            payment_status=reservation.payment_status,
            subtotal_cents=reservation.subtotal_cents,
            promo_code=reservation.promo_code,
            promo_discount_cents=reservation.promo_discount_cents,
            gift_card_code=reservation.gift_card_code,
            gift_card_credit_cents=reservation.gift_card_credit_cents,
            final_amount_cents=reservation.final_amount_cents,
            currency=reservation.currency,
            payment_intent_id=reservation.payment_intent_id,
            cancellation_reason=reservation.cancellation_reason,
            canceled_at=reservation.canceled_at,
            created_at=reservation.created_at,
        )

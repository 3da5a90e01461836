"""Pricing request and response schemas. Amounts are integer cents."""

from typing import List, Optional

from pydantic import Field, model_validator

from ..core.constants import MAX_CODE_LENGTH
from ._strict_base import StrictModel, StrictRequestModel


class TicketLineIn(StrictRequestModel):
    name: Optional[str] = Field(default=None, max_length=100)
    price_cents: int = Field(..., ge=0)
    quantity: int = Field(..., ge=0)


class PromoCodeCheckRequest(StrictRequestModel):
    code: str = Field(..., max_length=MAX_CODE_LENGTH)
    subtotal_cents: int = Field(..., ge=0)


class GiftCardCheckRequest(StrictRequestModel):
    code: str = Field(..., max_length=MAX_CODE_LENGTH)
    amount_owed_cents: int = Field(..., ge=0, description="Amount owed after any promo discount")
    requested_amount_cents: Optional[int] = None


class QuoteRequest(StrictRequestModel):
    """Either ``activity_id`` + ``party_size`` or an explicit ``subtotal_cents``."""

    activity_id: Optional[str] = None
    party_size: Optional[int] = Field(default=None, ge=1)
    subtotal_cents: Optional[int] = Field(default=None, ge=0)
    ticket_lines: Optional[List[TicketLineIn]] = None
    promo_code: Optional[str] = Field(default=None, max_length=MAX_CODE_LENGTH)
    gift_card_code: Optional[str] = Field(default=None, max_length=MAX_CODE_LENGTH)
    gift_card_amount_cents: Optional[int] = None

    @model_validator(mode="after")
    def _require_price_source(self) -> "QuoteRequest":
        has_activity = self.activity_id is not None and (
            self.party_size is not None or self.ticket_lines
        )
        if not has_activity and self.subtotal_cents is None:
            raise ValueError("Provide subtotal_cents, or activity_id with party_size/ticket_lines")
        return self


class PromoCodeResponse(StrictModel):
    is_valid: bool
    code: Optional[str] = None
    discount_cents: int = 0
    discount_type: Optional[str] = None
    discount_value: Optional[int] = None
    promo_code_id: Optional[str] = None
    error: Optional[str] = None


class GiftCardResponse(StrictModel):
    is_valid: bool
    code: Optional[str] = None
    gift_card_id: Optional[str] = None
    balance_cents: int = 0
    amount_applied_cents: int = 0
    remaining_after_cents: int = 0
    amount_owed_cents: int = 0
    status: Optional[str] = None
    error: Optional[str] = None


class QuoteResponse(StrictModel):
    subtotal_cents: int
    promo_discount_cents: int
    gift_card_credit_cents: int
    final_amount_cents: int
    currency: str
    promo: Optional[PromoCodeResponse] = None
    gift_card: Optional[GiftCardResponse] = None
    errors: List[str] = Field(default_factory=list)

"""V1 pricing endpoints: promo code and gift card checks, and quotes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ...api.dependencies import get_pricing_service
from ...core.config import settings
from ...core.exceptions import DomainException
from ...schemas.pricing import (
    GiftCardCheckRequest,
    GiftCardResponse,
    PromoCodeCheckRequest,
    PromoCodeResponse,
    QuoteRequest,
    QuoteResponse,
)
from ...services.pricing_service import PriceQuote, PricingService, TicketLine

logger = logging.getLogger(__name__)

# V1 router - mounted at /api/v1/pricing
router = APIRouter(tags=["pricing"])


def _quote_response(quote: PriceQuote) -> QuoteResponse:
    return QuoteResponse(
        subtotal_cents=quote.subtotal_cents,
        promo_discount_cents=quote.promo_discount_cents,
        gift_card_credit_cents=quote.gift_card_credit_cents,
        final_amount_cents=quote.final_amount_cents,
        currency=quote.currency,
        promo=PromoCodeResponse(**quote.promo.to_dict()) if quote.promo else None,
        gift_card=GiftCardResponse(**quote.gift_card.to_dict()) if quote.gift_card else None,
        errors=quote.errors,
    )


@router.post("/promo-code", response_model=PromoCodeResponse)
async def check_promo_code(
    payload: PromoCodeCheckRequest,
    pricing_service: PricingService = Depends(get_pricing_service),
) -> PromoCodeResponse:
    """Validate a promo code against a subtotal. Invalid codes return 200 with ``error`` set."""
    result = await pricing_service.apply_promo_code(payload.code, payload.subtotal_cents)
    return PromoCodeResponse(**result.to_dict())


@router.post("/gift-card", response_model=GiftCardResponse)
async def check_gift_card(
    payload: GiftCardCheckRequest,
    pricing_service: PricingService = Depends(get_pricing_service),
) -> GiftCardResponse:
    """Preview a gift card against the amount owed. Nothing is debited."""
    result = await pricing_service.apply_gift_card(
        payload.code, payload.amount_owed_cents, payload.requested_amount_cents
    )
    return GiftCardResponse(**result.to_dict())


@router.post("/quote", response_model=QuoteResponse)
async def quote_reservation(
    payload: QuoteRequest,
    pricing_service: PricingService = Depends(get_pricing_service),
) -> QuoteResponse:
    """Return the stacked price (promo, then gift card) without persisting anything."""
    ticket_lines = (
        [
            TicketLine(price_cents=line.price_cents, quantity=line.quantity, name=line.name)
            for line in payload.ticket_lines
        ]
        if payload.ticket_lines
        else None
    )
    try:
        if payload.activity_id is not None:
            quote = await pricing_service.quote_for_activity(
                payload.activity_id,
                payload.party_size,
                ticket_lines=ticket_lines,
                promo_code=payload.promo_code,
                gift_card_code=payload.gift_card_code,
                gift_card_amount_cents=payload.gift_card_amount_cents,
            )
        else:
            quote = await pricing_service.build_quote(
                payload.subtotal_cents or 0,
                promo_code=payload.promo_code,
                gift_card_code=payload.gift_card_code,
                gift_card_amount_cents=payload.gift_card_amount_cents,
                currency=settings.default_currency,
            )
    except DomainException as exc:
        raise exc.to_http_exception() from exc

    return _quote_response(quote)

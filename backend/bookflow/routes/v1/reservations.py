"""
Reservation routes - API v1.

Creating a reservation inserts it as pending and returns the payment
intent's client secret. The payment provider's callback (or an operator)
moves it along via the status endpoint.
"""

import logging

from fastapi import APIRouter, Depends, status

from ...api.dependencies import get_reservation_service
from ...core.exceptions import DomainException
from ...schemas.reservation import (
    ReservationCancel,
    ReservationCreate,
    ReservationPaymentResponse,
    ReservationResponse,
    ReservationStatusUpdate,
)
from ...services.pricing_service import TicketLine
from ...services.reservation_service import ReservationRequest, ReservationService

logger = logging.getLogger(__name__)

# V1 router - mounted at /api/v1/reservations
router = APIRouter(tags=["reservations-v1"])


@router.post(
    "",
    response_model=ReservationPaymentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"description": "The slot was taken (code SLOT_UNAVAILABLE)"},
        502: {"description": "Payment intent failed; the reservation stays pending"},
    },
)
async def create_reservation(
    payload: ReservationCreate,
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationPaymentResponse:
    request = ReservationRequest(
        activity_id=payload.activity_id,
        booking_date=payload.booking_date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        party_size=payload.party_size,
        customer_email=str(payload.customer.email),
        customer_name=payload.customer.full_name,
        customer_phone=payload.customer.phone,
        promo_code=payload.promo_code,
        gift_card_code=payload.gift_card_code,
        gift_card_amount_cents=payload.gift_card_amount_cents,
        ticket_lines=[
            TicketLine(price_cents=line.price_cents, quantity=line.quantity, name=line.name)
            for line in payload.ticket_lines
        ]
        if payload.ticket_lines
        else None,
        notes=payload.notes,
    )
    try:
        result = await reservation_service.create_reservation_with_payment(request)
    except DomainException as exc:
        raise exc.to_http_exception() from exc
    return ReservationPaymentResponse(**result.to_dict())


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: str,
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        reservation = await reservation_service.get_reservation(reservation_id)
    except DomainException as exc:
        raise exc.to_http_exception() from exc
    return ReservationResponse.from_reservation(reservation)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation(
    reservation_id: str,
    payload: ReservationCancel,
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    """Cancel and free the slot. Canceling an already canceled reservation is a no-op."""
    try:
        reservation = await reservation_service.cancel_reservation(reservation_id, payload.reason)
    except DomainException as exc:
        raise exc.to_http_exception() from exc
    return ReservationResponse.from_reservation(reservation)


@router.patch("/{reservation_id}/status", response_model=ReservationResponse)
async def update_reservation_status(
    reservation_id: str,
    payload: ReservationStatusUpdate,
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        reservation = await reservation_service.update_reservation_status(
            reservation_id, payload.status, payload.payment_status
        )
    except DomainException as exc:
        raise exc.to_http_exception() from exc
    return ReservationResponse.from_reservation(reservation)


@router.post("/{reservation_id}/retry-payment", response_model=ReservationPaymentResponse)
async def retry_payment(
    reservation_id: str,
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationPaymentResponse:
    try:
        result = await reservation_service.retry_payment(reservation_id)
    except DomainException as exc:
        raise exc.to_http_exception() from exc
    return ReservationPaymentResponse(**result.to_dict())

"""
Reservation Service for the Bookflow engine.

Coordinates one reservation from request to payment intent:

1. validate the request against the activity,
2. find or create the customer by email,
3. price it (promo code, then gift card),
4. insert the reservation as pending/pending,
5. debit any gift card credit from the card,
6. request a payment intent for the amount owed.

Each step is its own round trip; nothing spans them in a transaction.
The service does not re-check availability before inserting. The
storage overlap guard is the authority, and a rejected insert surfaces
as AvailabilityConflictException. If the payment intent cannot be
created the reservation stays pending so payment can be retried
against it. A gift card that can no longer cover its credit cancels the
reservation it was quoted for; canceling an unpaid reservation puts the
credit back on the card.
"""

import asyncio
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timezone
import logging
import secrets
from typing import Any, Callable, Dict, Optional, Sequence, Union

from sqlalchemy.orm import Session

from ..core.constants import (
    CONFIRMATION_CODE_ALPHABET,
    CONFIRMATION_CODE_LENGTH,
    CONFIRMATION_CODE_PREFIX,
    MAX_REASON_LENGTH,
)
from ..core.exceptions import (
    AvailabilityConflictException,
    InvalidStatusTransitionException,
    NotFoundException,
    PaymentGatewayException,
    RepositoryException,
    ServiceException,
    UniqueViolationException,
    ValidationException,
)
from ..core.time_utils import add_minutes_to_time, format_time_24h, parse_time
from ..models.activity import Activity
from ..models.customer import Customer, normalize_email
from ..models.reservation import PaymentStatus, Reservation, ReservationStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..realtime.events import ChangeEventType
from ..realtime.invalidation_bus import RealtimeInvalidationBus, get_invalidation_bus
from ..repositories.factory import RepositoryFactory
from .availability_cache import AvailabilityCache
from .base import BaseService
from .payment_gateway import PaymentGateway, StripePaymentGateway
from .pricing_service import PriceQuote, PricingService, TicketLine

logger = logging.getLogger(__name__)

RESERVATIONS_TABLE = "reservations"
_CONFIRMATION_CODE_ATTEMPTS = 5


@dataclass
class ReservationRequest:
    """Everything a caller supplies to book one slot."""

    activity_id: str
    booking_date: date
    start_time: Union[str, time]
    party_size: int
    customer_email: str
    customer_name: str
    end_time: Optional[Union[str, time]] = None
    customer_phone: Optional[str] = None
    promo_code: Optional[str] = None
    gift_card_code: Optional[str] = None
    gift_card_amount_cents: Optional[int] = None
    ticket_lines: Optional[Sequence[TicketLine]] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ReservationPaymentResult:
    reservation_id: str
    confirmation_code: str
    payment_client_secret: Optional[str]
    payment_intent_id: Optional[str]
    amount_cents: int
    currency: str
    status: str
    payment_status: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ReservationService(BaseService):
    """Creates, cancels and transitions reservations."""

    def __init__(
        self,
        db: Session,
        pricing_service: Optional[PricingService] = None,
        payment_gateway: Optional[PaymentGateway] = None,
        bus: Optional[RealtimeInvalidationBus] = None,
        cache: Optional[AvailabilityCache] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        super().__init__(db)
        self.activity_repository = RepositoryFactory.create_activity_repository(db)
        self.customer_repository = RepositoryFactory.create_customer_repository(db)
        self.reservation_repository = RepositoryFactory.create_reservation_repository(db)
        self.pricing_service = pricing_service or PricingService(db)
        self.payment_gateway: PaymentGateway = payment_gateway or StripePaymentGateway()
        self.bus = bus or get_invalidation_bus()
        self.cache = cache
        self._clock = clock

    # Creation

    @BaseService.measure_operation("create_reservation_with_payment")
    async def create_reservation_with_payment(
        self, request: ReservationRequest
    ) -> ReservationPaymentResult:
        """
        Insert a pending reservation and obtain a payment intent for it.

        Raises:
            ValidationException: Bad input, or a promo code/gift card that no longer applies
            NotFoundException: Unknown or inactive activity
            AvailabilityConflictException: The slot was taken before the insert landed
            PaymentGatewayException: The intent could not be created; the reservation stays pending
            ServiceException: The store rejected a write
        """
        activity, start_time, end_time = await self._validate_request(request)
        customer = await self._find_or_create_customer(
            request.customer_email, request.customer_name, request.customer_phone
        )

        subtotal = self.pricing_service.compute_subtotal(
            activity.unit_price_cents, request.party_size, request.ticket_lines
        )
        quote = await self.pricing_service.build_quote(
            subtotal,
            promo_code=request.promo_code,
            gift_card_code=request.gift_card_code,
            gift_card_amount_cents=request.gift_card_amount_cents,
            currency=activity.currency,
        )
        if not quote.is_valid:
            raise ValidationException(
                quote.errors[0], code="INVALID_DISCOUNT", details={"errors": quote.errors}
            )

        reservation = await self._insert_reservation(
            activity, customer, request, start_time, end_time, quote
        )
        if reservation.gift_card_credit_cents > 0:
            await self._hold_gift_card(reservation)
        await self._publish(reservation, ChangeEventType.INSERT)

        if reservation.final_amount_cents == 0:
            return await self._settle_without_payment(reservation)
        return await self._attach_payment_intent(reservation)

    async def _validate_request(self, request: ReservationRequest):
        if not request.activity_id or not request.activity_id.strip():
            raise ValidationException("activity_id is required", code="MISSING_ACTIVITY_ID")
        if not request.customer_email or "@" not in request.customer_email:
            raise ValidationException("A valid customer email is required", code="INVALID_EMAIL")
        if not request.customer_name or not request.customer_name.strip():
            raise ValidationException("Customer name is required", code="MISSING_CUSTOMER_NAME")
        if request.booking_date < self._clock().date():
            raise ValidationException(
                "Cannot book a date in the past",
                code="DATE_IN_PAST",
                details={"booking_date": request.booking_date.isoformat()},
            )

        try:
            activity = await asyncio.to_thread(
                self.activity_repository.get_active, request.activity_id
            )
        except RepositoryException as exc:
            raise ServiceException("Failed to load activity") from exc
        if activity is None:
            raise NotFoundException(
                f"Activity {request.activity_id} not found", code="ACTIVITY_NOT_FOUND"
            )

        if not activity.min_party_size <= request.party_size <= activity.max_party_size:
            raise ValidationException(
                f"Party size must be between {activity.min_party_size} "
                f"and {activity.max_party_size}",
                code="INVALID_PARTY_SIZE",
                details={
                    "party_size": request.party_size,
                    "min_party_size": activity.min_party_size,
                    "max_party_size": activity.max_party_size,
                },
            )

        start_time = parse_time(request.start_time)
        expected_end = add_minutes_to_time(start_time, activity.duration_minutes)
        if expected_end is None:
            raise ValidationException(
                "Reservation cannot run past midnight", code="INVALID_TIME_RANGE"
            )
        if request.end_time is not None and parse_time(request.end_time) != expected_end:
            raise ValidationException(
                f"End time must be {format_time_24h(expected_end)} for a "
                f"{activity.duration_minutes} minute activity",
                code="INVALID_TIME_RANGE",
            )
        return activity, start_time, expected_end

    async def _find_or_create_customer(
        self, email: str, full_name: str, phone: Optional[str]
    ) -> Customer:
        normalized = normalize_email(email)
        try:
            customer = await asyncio.to_thread(self.customer_repository.find_by_email, normalized)
            if customer is not None:
                return customer
            try:
                customer = await asyncio.to_thread(
                    self.customer_repository.create_customer, normalized, full_name.strip(), phone
                )
                self.logger.info("Created customer %s", customer.id)
                return customer
            except UniqueViolationException:
                # Lost a race with another request for the same email.
                customer = await asyncio.to_thread(
                    self.customer_repository.find_by_email, normalized
                )
        except RepositoryException as exc:
            self.logger.error(f"Customer lookup/create failed: {str(exc)}")
            raise ServiceException("Failed to save customer") from exc

        if customer is None:
            raise ServiceException("Customer record could not be resolved")
        return customer

    async def _insert_reservation(
        self,
        activity: Activity,
        customer: Customer,
        request: ReservationRequest,
        start_time: time,
        end_time: time,
        quote: PriceQuote,
    ) -> Reservation:
        fields = {
            "confirmation_code": await self._new_confirmation_code(),
            "activity_id": activity.id,
            "venue_id": activity.venue_id,
            "customer_id": customer.id,
            "booking_date": request.booking_date,
            "start_time": start_time,
            "end_time": end_time,
            "party_size": request.party_size,
            "status": ReservationStatus.PENDING.value,
            "payment_status": PaymentStatus.PENDING.value,
            "subtotal_cents": quote.subtotal_cents,
            "promo_code": quote.promo.code if quote.promo_discount_cents else None,
            "promo_discount_cents": quote.promo_discount_cents,
            "gift_card_code": quote.gift_card.code if quote.gift_card_credit_cents else None,
            "gift_card_credit_cents": quote.gift_card_credit_cents,
            "final_amount_cents": quote.final_amount_cents,
            "currency": quote.currency,
            "notes": request.notes,
        }
        try:
            return await asyncio.to_thread(self.reservation_repository.insert_reservation, **fields)
        except UniqueViolationException as exc:
            prometheus_metrics.inc_reservation_conflict()
            self.logger.info(
                "Slot %s %s-%s on activity %s was taken at commit time",
                request.booking_date,
                start_time,
                end_time,
                activity.id,
            )
            raise AvailabilityConflictException(
                details={
                    "activity_id": activity.id,
                    "booking_date": request.booking_date.isoformat(),
                    "start_time": format_time_24h(start_time),
                    "end_time": format_time_24h(end_time),
                }
            ) from exc
        except RepositoryException as exc:
            self.logger.error(f"Reservation insert failed: {str(exc)}")
            raise ServiceException("Failed to create reservation") from exc

    async def _new_confirmation_code(self) -> str:
        for _ in range(_CONFIRMATION_CODE_ATTEMPTS):
            suffix = "".join(
                secrets.choice(CONFIRMATION_CODE_ALPHABET) for _ in range(CONFIRMATION_CODE_LENGTH)
            )
            code = f"{CONFIRMATION_CODE_PREFIX}-{suffix}"
            try:
                taken = await asyncio.to_thread(
                    self.reservation_repository.confirmation_code_exists, code
                )
            except RepositoryException as exc:
                raise ServiceException("Failed to allocate confirmation code") from exc
            if not taken:
                return code
        raise ServiceException("Could not allocate a unique confirmation code")

    async def _hold_gift_card(self, reservation: Reservation) -> None:
        """
        Debit the quoted credit from the card now, so no other reservation can spend it.

        Raises:
            ValidationException: The card no longer covers the credit; the reservation is canceled
        """
        try:
            result = await self.pricing_service.redeem_gift_card(
                reservation.gift_card_code, reservation.gift_card_credit_cents, reservation.id
            )
        except ServiceException:
            await self._release_slot(reservation, "Gift card could not be charged")
            raise
        if result.is_valid:
            return

        self.logger.warning(
            "Gift card %s could not cover %d cents for reservation %s: %s",
            reservation.gift_card_code,
            reservation.gift_card_credit_cents,
            reservation.id,
            result.error,
        )
        await self._release_slot(reservation, "Gift card no longer covers the applied credit")
        raise ValidationException(
            result.error or "Gift card could not be applied",
            code="INVALID_DISCOUNT",
            details={"errors": [result.error], "gift_card_code": reservation.gift_card_code},
        )

    async def _release_slot(self, reservation: Reservation, reason: str) -> None:
        updated = await self._update(
            reservation.id,
            status=ReservationStatus.CANCELED.value,
            canceled_at=self._clock(),
            cancellation_reason=reason,
        )
        await self._publish(updated, ChangeEventType.UPDATE)

    # Payment

    async def _attach_payment_intent(self, reservation: Reservation) -> ReservationPaymentResult:
        # Counted before the request so a failed attempt is never replayed.
        attempt = (reservation.payment_attempts or 0) + 1
        reservation = await self._update(reservation.id, payment_attempts=attempt)
        try:
            intent = await self.payment_gateway.create_payment_intent(
                reservation.id,
                reservation.final_amount_cents,
                reservation.currency,
                metadata={
                    "confirmation_code": reservation.confirmation_code,
                    "activity_id": reservation.activity_id,
                    "customer_id": reservation.customer_id,
                },
                attempt=attempt,
            )
        except PaymentGatewayException as exc:
            self.logger.error(
                "Payment intent failed for reservation %s; left pending for retry: %s",
                reservation.id,
                exc.message,
            )
            exc.reservation_id = reservation.id
            exc.details.setdefault("reservation_id", reservation.id)
            raise

        updated = await self._update(
            reservation.id,
            payment_intent_id=intent.payment_intent_id,
            payment_client_secret=intent.client_secret,
        )
        return self._payment_result(updated)

    async def _settle_without_payment(self, reservation: Reservation) -> ReservationPaymentResult:
        """Discounts covered everything: confirm now and redeem immediately."""
        self.logger.info("Reservation %s fully covered by discounts", reservation.id)
        updated = await self._update(
            reservation.id,
            status=ReservationStatus.CONFIRMED.value,
            payment_status=PaymentStatus.PAID.value,
            confirmed_at=self._clock(),
        )
        updated = await self._redeem_discounts(updated)
        await self._publish(updated, ChangeEventType.UPDATE)
        return self._payment_result(updated)

    @BaseService.measure_operation("retry_payment")
    async def retry_payment(self, reservation_id: str) -> ReservationPaymentResult:
        """Request a payment intent again for a reservation still awaiting payment."""
        reservation = await self.get_reservation(reservation_id)
        unpaid = reservation.payment_status in (
            PaymentStatus.PENDING.value,
            PaymentStatus.FAILED.value,
        )
        if reservation.status != ReservationStatus.PENDING.value or not unpaid:
            raise ValidationException(
                "Only pending, unpaid reservations can retry payment",
                code="PAYMENT_NOT_RETRYABLE",
                details={
                    "status": reservation.status,
                    "payment_status": reservation.payment_status,
                },
            )
        if reservation.final_amount_cents == 0:
            return await self._settle_without_payment(reservation)
        return await self._attach_payment_intent(reservation)

    # Lifecycle

    @BaseService.measure_operation("get_reservation")
    async def get_reservation(self, reservation_id: str) -> Reservation:
        try:
            reservation = await asyncio.to_thread(
                self.reservation_repository.get_by_id, reservation_id, False
            )
        except RepositoryException as exc:
            raise ServiceException("Failed to load reservation") from exc
        if reservation is None:
            raise NotFoundException(
                f"Reservation {reservation_id} not found", code="RESERVATION_NOT_FOUND"
            )
        return reservation

    @BaseService.measure_operation("cancel_reservation")
    async def cancel_reservation(
        self, reservation_id: str, reason: Optional[str] = None
    ) -> Reservation:
        """
        Cancel a reservation, releasing its slot immediately.

        Canceling twice is a no-op. Refunds are not issued here; a gift card
        held by an unpaid reservation gets its credit back.
        """
        reservation = await self.get_reservation(reservation_id)
        if reservation.status == ReservationStatus.CANCELED.value:
            return reservation
        if not reservation.can_transition_to(ReservationStatus.CANCELED):
            raise InvalidStatusTransitionException(
                reservation.status, ReservationStatus.CANCELED.value
            )

        updated = await self._update(
            reservation_id,
            status=ReservationStatus.CANCELED.value,
            canceled_at=self._clock(),
            cancellation_reason=(reason or "").strip()[:MAX_REASON_LENGTH] or None,
        )
        self.logger.info("Reservation %s canceled", reservation_id)
        await self._release_gift_card(updated)
        await self._publish(updated, ChangeEventType.UPDATE)
        return updated

    @BaseService.measure_operation("update_reservation_status")
    async def update_reservation_status(
        self,
        reservation_id: str,
        status: Union[str, ReservationStatus],
        payment_status: Optional[Union[str, PaymentStatus]] = None,
    ) -> Reservation:
        """
        Move a reservation along its lifecycle, typically from a payment callback.

        Allowed: pending→confirmed, pending→canceled, confirmed→completed,
        confirmed→canceled. Becoming paid records promo usage, once.
        Canceling an unpaid reservation returns its gift card credit.
        """
        try:
            target = ReservationStatus(status)
            target_payment = PaymentStatus(payment_status) if payment_status else None
        except ValueError as exc:
            raise ValidationException(str(exc), code="INVALID_STATUS") from exc

        reservation = await self.get_reservation(reservation_id)
        if not reservation.can_transition_to(target):
            raise InvalidStatusTransitionException(reservation.status, target.value)

        fields: Dict[str, Any] = {}
        if target.value != reservation.status:
            fields["status"] = target.value
            if target == ReservationStatus.CONFIRMED:
                fields["confirmed_at"] = self._clock()
            elif target == ReservationStatus.CANCELED:
                fields["canceled_at"] = self._clock()
        if target_payment is not None and target_payment.value != reservation.payment_status:
            fields["payment_status"] = target_payment.value
        if not fields:
            return reservation

        updated = await self._update(reservation_id, **fields)
        if (
            updated.payment_status == PaymentStatus.PAID.value
            and updated.discounts_redeemed_at is None
        ):
            updated = await self._redeem_discounts(updated)
        if "status" in fields and target == ReservationStatus.CANCELED:
            await self._release_gift_card(updated)

        self.logger.info(
            "Reservation %s now %s/%s", reservation_id, updated.status, updated.payment_status
        )
        await self._publish(updated, ChangeEventType.UPDATE)
        return updated

    async def _redeem_discounts(self, reservation: Reservation) -> Reservation:
        """Count promo usage for a paid reservation; its gift card was debited at creation."""
        if reservation.promo_code and reservation.promo_discount_cents > 0:
            await self.pricing_service.record_promo_usage(
                reservation.promo_code,
                reservation.id,
                reservation.customer_id,
                reservation.promo_discount_cents,
            )
        return await self._update(reservation.id, discounts_redeemed_at=self._clock())

    async def _release_gift_card(self, reservation: Reservation) -> None:
        if not reservation.gift_card_code or reservation.payment_status == PaymentStatus.PAID.value:
            return
        await self.pricing_service.release_gift_card(reservation.gift_card_code, reservation.id)

    # Helpers

    async def _update(self, reservation_id: str, **fields: Any) -> Reservation:
        try:
            updated = await asyncio.to_thread(
                self.reservation_repository.update_and_commit, reservation_id, **fields
            )
        except RepositoryException as exc:
            self.logger.error(f"Reservation {reservation_id} update failed: {str(exc)}")
            raise ServiceException("Failed to update reservation") from exc
        if updated is None:
            raise NotFoundException(
                f"Reservation {reservation_id} not found", code="RESERVATION_NOT_FOUND"
            )
        return updated

    async def _publish(self, reservation: Reservation, event_type: ChangeEventType) -> None:
        # The local cache must not wait for the bus round trip.
        if self.cache is not None:
            self.cache.invalidate_activity(reservation.activity_id)
        await self.bus.publish_change(
            RESERVATIONS_TABLE,
            event_type,
            activity_id=reservation.activity_id,
            venue_id=reservation.venue_id,
        )

    @staticmethod
    def _payment_result(reservation: Reservation) -> ReservationPaymentResult:
        return ReservationPaymentResult(
            reservation_id=reservation.id,
            confirmation_code=reservation.confirmation_code,
            payment_client_secret=reservation.payment_client_secret,
            payment_intent_id=reservation.payment_intent_id,
            amount_cents=reservation.final_amount_cents,
            currency=reservation.currency,
            status=reservation.status,
            payment_status=reservation.payment_status,
        )

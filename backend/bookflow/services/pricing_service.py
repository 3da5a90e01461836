"""
Pricing for reservations: subtotal, promo code, then gift card.

All amounts are integer cents. Discounts stack in a fixed order: the
promo discount comes off the subtotal first, the gift card is applied to
what remains, and the final amount is clamped at zero.

Validation problems with a promo code or gift card are returned as
structured results (``is_valid=False`` plus a display message), never
raised, so callers can show them inline. Only the redemption operations
mutate state: a gift card is debited when a reservation is created and
credited back if it is canceled unpaid, and promo usage is counted once
the reservation is paid.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.exceptions import (
    NotFoundException,
    RepositoryException,
    ServiceException,
    ValidationException,
)
from ..models.gift_card import GiftCard, GiftCardStatus
from ..models.promo_code import DiscountType, PromoCode, normalize_code
from ..repositories.factory import RepositoryFactory
from ..repositories.gift_card_repository import GiftCardRepository
from ..repositories.promo_code_repository import PromoCodeRepository
from .base import BaseService

logger = logging.getLogger(__name__)

PROMO_REQUIRED = "Please enter a promo code"
PROMO_INVALID = "Invalid promo code"
PROMO_NOT_STARTED = "This promo code is not active yet"
PROMO_EXPIRED = "This promo code has expired"
PROMO_LIMIT_REACHED = "This promo code has reached its usage limit"
PROMO_LOOKUP_FAILED = "We couldn't check this promo code right now. Please try again."

GIFT_CARD_REQUIRED = "Please enter a gift card code"
GIFT_CARD_INVALID = "Invalid gift card code"
GIFT_CARD_EXPIRED = "This gift card has expired"
GIFT_CARD_USED = "This gift card has been fully used"
GIFT_CARD_BAD_AMOUNT = "Gift card amount must be a positive number"
GIFT_CARD_LOOKUP_FAILED = "We couldn't check this gift card right now. Please try again."


def format_cents(amount_cents: int) -> str:
    dollars = Decimal(amount_cents) / Decimal(100)
    return f"${dollars.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):.2f}"


def _round_to_int(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; they are stored as UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class TicketLine:
    price_cents: int
    quantity: int
    name: Optional[str] = None


@dataclass(frozen=True)
class PromoCodeResult:
    is_valid: bool
    code: Optional[str] = None
    discount_cents: int = 0
    discount_type: Optional[str] = None
    discount_value: Optional[int] = None
    promo_code_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def invalid(cls, error: str, code: Optional[str] = None) -> "PromoCodeResult":
        return cls(is_valid=False, code=code, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GiftCardResult:
    """
    Preview of a gift card against an owed amount.

    ``status`` is the card's current status; previews never mutate it.
    """

    is_valid: bool
    code: Optional[str] = None
    gift_card_id: Optional[str] = None
    balance_cents: int = 0
    amount_applied_cents: int = 0
    remaining_after_cents: int = 0
    amount_owed_cents: int = 0
    status: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def invalid(
        cls, error: str, code: Optional[str] = None, amount_owed_cents: int = 0
    ) -> "GiftCardResult":
        return cls(is_valid=False, code=code, error=error, amount_owed_cents=amount_owed_cents)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PriceQuote:
    subtotal_cents: int
    promo_discount_cents: int
    gift_card_credit_cents: int
    final_amount_cents: int
    currency: str
    promo: Optional[PromoCodeResult] = None
    gift_card: Optional[GiftCardResult] = None

    @property
    def errors(self) -> List[str]:
        return [
            result.error
            for result in (self.promo, self.gift_card)
            if result is not None and not result.is_valid and result.error
        ]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subtotal_cents": self.subtotal_cents,
            "promo_discount_cents": self.promo_discount_cents,
            "gift_card_credit_cents": self.gift_card_credit_cents,
            "final_amount_cents": self.final_amount_cents,
            "currency": self.currency,
            "promo": self.promo.to_dict() if self.promo else None,
            "gift_card": self.gift_card.to_dict() if self.gift_card else None,
            "errors": self.errors,
        }


class PricingService(BaseService):
    """Subtotal, discount stacking and redemption for reservations."""

    def __init__(
        self,
        db: Session,
        promo_code_repository: Optional[PromoCodeRepository] = None,
        gift_card_repository: Optional[GiftCardRepository] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        super().__init__(db)
        self.promo_code_repository = (
            promo_code_repository or RepositoryFactory.create_promo_code_repository(db)
        )
        self.gift_card_repository = (
            gift_card_repository or RepositoryFactory.create_gift_card_repository(db)
        )
        self._clock = clock

    # Pure calculations

    @staticmethod
    def compute_subtotal(
        unit_price_cents: int,
        party_size: int,
        ticket_lines: Optional[Sequence[TicketLine]] = None,
    ) -> int:
        """``unit × party``, or the sum over selected ticket types when given."""
        if ticket_lines:
            subtotal = 0
            for line in ticket_lines:
                if line.price_cents < 0 or line.quantity < 0:
                    raise ValidationException(
                        "Ticket prices and quantities must be non-negative",
                        code="INVALID_TICKET_LINE",
                        details={"ticket": line.name},
                    )
                subtotal += line.price_cents * line.quantity
            return subtotal

        if unit_price_cents < 0 or party_size < 1:
            raise ValidationException(
                "Unit price must be non-negative and party size at least 1",
                code="INVALID_PRICE_INPUT",
            )
        return unit_price_cents * party_size

    @staticmethod
    def calculate_promo_discount(
        discount_type: str,
        discount_value: int,
        subtotal_cents: int,
        max_discount_cents: Optional[int] = None,
    ) -> int:
        """
        Discount in cents, always within ``[0, subtotal]``.

        Percentage values are whole percents; fixed values are cents.
        """
        if discount_type == DiscountType.PERCENTAGE.value:
            discount = _round_to_int(Decimal(subtotal_cents) * Decimal(discount_value) / 100)
            if max_discount_cents is not None:
                discount = min(discount, max_discount_cents)
        else:
            discount = discount_value
        return max(0, min(discount, subtotal_cents))

    @staticmethod
    def calculate_gift_card_application(
        balance_cents: int,
        amount_owed_cents: int,
        requested_amount_cents: Optional[int] = None,
    ) -> Tuple[int, int, int]:
        """Return ``(applied, remaining_after, amount_owed_after)``."""
        applied = min(balance_cents, max(0, amount_owed_cents))
        if requested_amount_cents is not None:
            applied = min(applied, requested_amount_cents)
        return applied, balance_cents - applied, amount_owed_cents - applied

    # Validation (no mutation)

    @BaseService.measure_operation("apply_promo_code")
    async def apply_promo_code(self, code: Optional[str], subtotal_cents: int) -> PromoCodeResult:
        normalized = normalize_code(code or "")
        if not normalized:
            return PromoCodeResult.invalid(PROMO_REQUIRED)

        try:
            promo = await asyncio.to_thread(self.promo_code_repository.find_by_code, normalized)
        except RepositoryException as exc:
            self.logger.warning("Promo code lookup failed for %s: %s", normalized, exc)
            return PromoCodeResult.invalid(PROMO_LOOKUP_FAILED, normalized)

        error = self._promo_error(promo, subtotal_cents)
        if error:
            return PromoCodeResult.invalid(error, normalized)

        assert promo is not None
        discount = self.calculate_promo_discount(
            promo.discount_type, promo.discount_value, subtotal_cents, promo.max_discount_cents
        )
        return PromoCodeResult(
            is_valid=True,
            code=promo.code,
            discount_cents=discount,
            discount_type=promo.discount_type,
            discount_value=promo.discount_value,
            promo_code_id=promo.id,
        )

    def _promo_error(self, promo: Optional[PromoCode], subtotal_cents: int) -> Optional[str]:
        if promo is None or not promo.is_active:
            return PROMO_INVALID
        now = self._clock()
        starts_at = _as_utc(promo.starts_at)
        expires_at = _as_utc(promo.expires_at)
        if starts_at is not None and now < starts_at:
            return PROMO_NOT_STARTED
        if expires_at is not None and now > expires_at:
            return PROMO_EXPIRED
        if promo.max_uses is not None and promo.uses_count >= promo.max_uses:
            return PROMO_LIMIT_REACHED
        if promo.min_order_cents is not None and subtotal_cents < promo.min_order_cents:
            return f"Minimum purchase of {format_cents(promo.min_order_cents)} required"
        return None

    @BaseService.measure_operation("apply_gift_card")
    async def apply_gift_card(
        self,
        code: Optional[str],
        amount_owed_cents: int,
        requested_amount_cents: Optional[int] = None,
    ) -> GiftCardResult:
        """Preview a gift card against what is owed after the promo discount."""
        normalized = normalize_code(code or "")
        if not normalized:
            return GiftCardResult.invalid(GIFT_CARD_REQUIRED, amount_owed_cents=amount_owed_cents)
        if requested_amount_cents is not None and requested_amount_cents <= 0:
            return GiftCardResult.invalid(
                GIFT_CARD_BAD_AMOUNT, normalized, amount_owed_cents=amount_owed_cents
            )

        try:
            card = await asyncio.to_thread(self.gift_card_repository.find_by_code, normalized)
        except RepositoryException as exc:
            self.logger.warning("Gift card lookup failed for %s: %s", normalized, exc)
            return GiftCardResult.invalid(
                GIFT_CARD_LOOKUP_FAILED, normalized, amount_owed_cents=amount_owed_cents
            )

        error = self._gift_card_error(card)
        if error:
            return GiftCardResult.invalid(error, normalized, amount_owed_cents=amount_owed_cents)

        assert card is not None
        applied, remaining_after, owed_after = self.calculate_gift_card_application(
            card.remaining_balance_cents, amount_owed_cents, requested_amount_cents
        )
        return GiftCardResult(
            is_valid=True,
            code=card.code,
            gift_card_id=card.id,
            balance_cents=card.remaining_balance_cents,
            amount_applied_cents=applied,
            remaining_after_cents=remaining_after,
            amount_owed_cents=owed_after,
            status=card.status,
        )

    def _gift_card_error(self, card: Optional[GiftCard]) -> Optional[str]:
        if card is None:
            return GIFT_CARD_INVALID
        expires_at = _as_utc(card.expires_at)
        if expires_at is not None and self._clock() > expires_at:
            return GIFT_CARD_EXPIRED
        if card.remaining_balance_cents <= 0 or card.status == GiftCardStatus.FULLY_USED.value:
            return GIFT_CARD_USED
        return None

    @BaseService.measure_operation("build_quote")
    async def build_quote(
        self,
        subtotal_cents: int,
        *,
        promo_code: Optional[str] = None,
        gift_card_code: Optional[str] = None,
        gift_card_amount_cents: Optional[int] = None,
        currency: str = "usd",
    ) -> PriceQuote:
        """
        Stack the discounts in order and compute the amount still owed.

        Invalid instruments contribute nothing; their messages are on
        ``quote.errors``.
        """
        promo_result: Optional[PromoCodeResult] = None
        promo_discount = 0
        if promo_code and promo_code.strip():
            promo_result = await self.apply_promo_code(promo_code, subtotal_cents)
            if promo_result.is_valid:
                promo_discount = promo_result.discount_cents

        owed_after_promo = subtotal_cents - promo_discount

        gift_result: Optional[GiftCardResult] = None
        gift_credit = 0
        if gift_card_code and gift_card_code.strip():
            gift_result = await self.apply_gift_card(
                gift_card_code, owed_after_promo, gift_card_amount_cents
            )
            if gift_result.is_valid:
                gift_credit = gift_result.amount_applied_cents

        return PriceQuote(
            subtotal_cents=subtotal_cents,
            promo_discount_cents=promo_discount,
            gift_card_credit_cents=gift_credit,
            final_amount_cents=max(0, subtotal_cents - promo_discount - gift_credit),
            currency=currency,
            promo=promo_result,
            gift_card=gift_result,
        )

    @BaseService.measure_operation("quote_for_activity")
    async def quote_for_activity(
        self,
        activity_id: str,
        party_size: Optional[int] = None,
        *,
        ticket_lines: Optional[Sequence[TicketLine]] = None,
        promo_code: Optional[str] = None,
        gift_card_code: Optional[str] = None,
        gift_card_amount_cents: Optional[int] = None,
    ) -> PriceQuote:
        """
        Quote a prospective reservation priced from the activity's unit price.

        Raises:
            NotFoundException: If the activity does not exist or is inactive
        """
        try:
            activity = await asyncio.to_thread(
                RepositoryFactory.create_activity_repository(self.db).get_active, activity_id
            )
        except RepositoryException as exc:
            raise ServiceException("Failed to load activity") from exc
        if activity is None:
            raise NotFoundException(f"Activity {activity_id} not found", code="ACTIVITY_NOT_FOUND")

        subtotal = self.compute_subtotal(activity.unit_price_cents, party_size or 0, ticket_lines)
        return await self.build_quote(
            subtotal,
            promo_code=promo_code,
            gift_card_code=gift_card_code,
            gift_card_amount_cents=gift_card_amount_cents,
            currency=activity.currency,
        )

    # Redemption: the gift card is held when the reservation is created,
    # promo usage is counted once it is paid.

    @BaseService.measure_operation("redeem_gift_card")
    async def redeem_gift_card(
        self, code: str, amount_cents: int, reservation_id: str
    ) -> GiftCardResult:
        """
        Debit the card for a reservation.

        Repeating the call for the same reservation is a no-op. A card that
        no longer covers the amount yields an invalid result; store failures
        raise ServiceException.
        """
        normalized = normalize_code(code)
        try:
            card = await asyncio.to_thread(self.gift_card_repository.find_by_code, normalized)
            if card is None:
                return GiftCardResult.invalid(GIFT_CARD_INVALID, normalized)

            already = await asyncio.to_thread(
                self.gift_card_repository.redemption_exists, card.id, reservation_id
            )
            if already:
                self.logger.info(
                    "Gift card %s already redeemed for reservation %s", normalized, reservation_id
                )
                return self._redeemed_result(card, 0)

            updated = await asyncio.to_thread(
                self.gift_card_repository.debit_balance, card.id, amount_cents, reservation_id
            )
        except RepositoryException as exc:
            self.logger.error(
                "Gift card redemption failed for %s on reservation %s: %s",
                normalized,
                reservation_id,
                exc,
            )
            raise ServiceException(
                "Gift card redemption failed", details={"reservation_id": reservation_id}
            ) from exc

        if updated is None:
            self.logger.warning(
                "Gift card %s no longer covers %s for reservation %s",
                normalized,
                format_cents(amount_cents),
                reservation_id,
            )
            return GiftCardResult.invalid(GIFT_CARD_USED, normalized)

        self.logger.info(
            "Redeemed %s from gift card %s for reservation %s (remaining %s)",
            format_cents(amount_cents),
            normalized,
            reservation_id,
            format_cents(updated.remaining_balance_cents),
        )
        return self._redeemed_result(updated, amount_cents)

    @staticmethod
    def _redeemed_result(card: GiftCard, amount_cents: int) -> GiftCardResult:
        return GiftCardResult(
            is_valid=True,
            code=card.code,
            gift_card_id=card.id,
            balance_cents=card.remaining_balance_cents,
            amount_applied_cents=amount_cents,
            remaining_after_cents=card.remaining_balance_cents,
            status=card.status,
        )

    @BaseService.measure_operation("release_gift_card")
    async def release_gift_card(self, code: str, reservation_id: str) -> bool:
        """Return a reservation's gift card credit to the card; False when nothing was held."""
        normalized = normalize_code(code)
        try:
            card = await asyncio.to_thread(self.gift_card_repository.find_by_code, normalized)
            if card is None:
                self.logger.warning("Gift card %s vanished before it could be released", normalized)
                return False
            restored = await asyncio.to_thread(
                self.gift_card_repository.restore_balance, card.id, reservation_id
            )
        except RepositoryException as exc:
            self.logger.error(
                "Gift card release failed for %s on reservation %s: %s",
                normalized,
                reservation_id,
                exc,
            )
            raise ServiceException(
                "Gift card release failed", details={"reservation_id": reservation_id}
            ) from exc

        if restored is None:
            return False
        self.logger.info(
            "Released gift card %s from reservation %s (remaining %s)",
            normalized,
            reservation_id,
            format_cents(restored.remaining_balance_cents),
        )
        return True

    @BaseService.measure_operation("record_promo_usage")
    async def record_promo_usage(
        self,
        code: str,
        reservation_id: str,
        customer_id: Optional[str],
        discount_cents: int,
    ) -> bool:
        """Count one use of a promo code against a paid reservation; idempotent per reservation."""
        normalized = normalize_code(code)
        try:
            promo = await asyncio.to_thread(self.promo_code_repository.find_by_code, normalized)
            if promo is None:
                self.logger.warning("Promo code %s vanished before usage was recorded", normalized)
                return False
            if await asyncio.to_thread(self.promo_code_repository.usage_exists, reservation_id):
                return True
            recorded = await asyncio.to_thread(
                self.promo_code_repository.record_usage,
                promo.id,
                reservation_id,
                customer_id,
                discount_cents,
            )
        except RepositoryException as exc:
            self.logger.error(
                "Recording promo usage failed for %s on reservation %s: %s",
                normalized,
                reservation_id,
                exc,
            )
            raise ServiceException(
                "Promo code usage could not be recorded",
                details={"reservation_id": reservation_id},
            ) from exc

        if not recorded:
            self.logger.warning(
                "Promo code %s hit its usage limit before reservation %s was paid",
                normalized,
                reservation_id,
            )
        return recorded

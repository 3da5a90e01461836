"""
SQLAlchemy models for the Bookflow engine.

Importing this package registers every table on ``Base.metadata``.
"""

from .activity import Activity, BlockedDate, CustomAvailableDate
from .customer import Customer
from .gift_card import GiftCard, GiftCardRedemption, GiftCardStatus
from .promo_code import DiscountType, PromoCode, PromoCodeUsage
from .reservation import PaymentStatus, Reservation, ReservationStatus

__all__ = [
    "Activity",
    "BlockedDate",
    "CustomAvailableDate",
    "Customer",
    "DiscountType",
    "GiftCard",
    "GiftCardRedemption",
    "GiftCardStatus",
    "PaymentStatus",
    "PromoCode",
    "PromoCodeUsage",
    "Reservation",
    "ReservationStatus",
]

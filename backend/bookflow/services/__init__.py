from .availability_cache import AvailabilityCache
from .availability_service import AvailabilityService, SlotAvailability, SlotReason
from .base import BaseService
from .payment_gateway import PaymentGateway, PaymentIntentResult, RefundRecord, StripePaymentGateway
from .pricing_service import GiftCardResult, PriceQuote, PricingService, PromoCodeResult, TicketLine
from .reservation_service import ReservationPaymentResult, ReservationRequest, ReservationService
from .slot_generator import CandidateSlot, OperatingSchedule, SlotSequence, generate_slots

__all__ = [
    "AvailabilityCache",
    "AvailabilityService",
    "BaseService",
    "CandidateSlot",
    "GiftCardResult",
    "OperatingSchedule",
    "PaymentGateway",
    "PaymentIntentResult",
    "PriceQuote",
    "PricingService",
    "PromoCodeResult",
    "RefundRecord",
    "ReservationPaymentResult",
    "ReservationRequest",
    "ReservationService",
    "SlotAvailability",
    "SlotReason",
    "SlotSequence",
    "StripePaymentGateway",
    "TicketLine",
    "generate_slots",
]

"""
Service layer dependencies for dependency injection.

Sessions are per request; the availability cache, payment gateway and
invalidation bus are process-wide and shared by every request.
"""

from functools import lru_cache
import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...core.config import settings
from ...realtime.invalidation_bus import RealtimeInvalidationBus, get_invalidation_bus
from ...services.availability_cache import AvailabilityCache
from ...services.availability_service import AvailabilityService
from ...services.payment_gateway import PaymentGateway, StripePaymentGateway
from ...services.pricing_service import PricingService
from ...services.reservation_service import ReservationService
from .database import get_db

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_availability_cache() -> AvailabilityCache:
    """Process-wide slot cache, invalidated from the realtime bus."""
    return AvailabilityCache(ttl_seconds=settings.availability_cache_ttl_seconds)


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    return StripePaymentGateway()


def get_invalidation_bus_dependency() -> RealtimeInvalidationBus:
    return get_invalidation_bus()


def get_availability_service(
    db: Session = Depends(get_db),
    cache: AvailabilityCache = Depends(get_availability_cache),
) -> AvailabilityService:
    """
    Get availability service instance.

    Args:
        db: Database session
        cache: Shared slot cache

    Returns:
        AvailabilityService instance
    """
    return AvailabilityService(db, cache=cache)


def get_pricing_service(db: Session = Depends(get_db)) -> PricingService:
    return PricingService(db)


def get_reservation_service(
    db: Session = Depends(get_db),
    pricing_service: PricingService = Depends(get_pricing_service),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
    bus: RealtimeInvalidationBus = Depends(get_invalidation_bus_dependency),
    cache: AvailabilityCache = Depends(get_availability_cache),
) -> ReservationService:
    """
    Get reservation service instance.

    Shares the request's session with its pricing service so discounts and
    the reservation are read and written through one connection, and
    drops this process's cached slot lists directly after each write.
    """
    return ReservationService(
        db,
        pricing_service=pricing_service,
        payment_gateway=payment_gateway,
        bus=bus,
        cache=cache,
    )

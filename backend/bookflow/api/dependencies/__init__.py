"""FastAPI dependency providers."""

from .database import get_db
from .services import (
    get_availability_cache,
    get_availability_service,
    get_invalidation_bus_dependency,
    get_payment_gateway,
    get_pricing_service,
    get_reservation_service,
)

__all__ = [
    "get_db",
    "get_availability_cache",
    "get_availability_service",
    "get_invalidation_bus_dependency",
    "get_payment_gateway",
    "get_pricing_service",
    "get_reservation_service",
]

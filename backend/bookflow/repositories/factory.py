"""
Repository Factory for the Bookflow engine.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from .activity_repository import ActivityRepository
    from .customer_repository import CustomerRepository
    from .gift_card_repository import GiftCardRepository
    from .promo_code_repository import PromoCodeRepository
    from .reservation_repository import ReservationRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_activity_repository(db: Session) -> "ActivityRepository":
        from .activity_repository import ActivityRepository

        return ActivityRepository(db)

    @staticmethod
    def create_reservation_repository(db: Session) -> "ReservationRepository":
        """Create repository for reservation writes and overlap checks."""
        from .reservation_repository import ReservationRepository

        return ReservationRepository(db)

    @staticmethod
    def create_customer_repository(db: Session) -> "CustomerRepository":
        from .customer_repository import CustomerRepository

        return CustomerRepository(db)

    @staticmethod
    def create_promo_code_repository(db: Session) -> "PromoCodeRepository":
        from .promo_code_repository import PromoCodeRepository

        return PromoCodeRepository(db)

    @staticmethod
    def create_gift_card_repository(db: Session) -> "GiftCardRepository":
        from .gift_card_repository import GiftCardRepository

        return GiftCardRepository(db)

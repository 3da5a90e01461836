from .activity_repository import ActivityRepository
from .base_repository import BaseRepository
from .customer_repository import CustomerRepository
from .factory import RepositoryFactory
from .gift_card_repository import GiftCardRepository
from .promo_code_repository import PromoCodeRepository
from .reservation_repository import ReservationRepository

__all__ = [
    "ActivityRepository",
    "BaseRepository",
    "CustomerRepository",
    "GiftCardRepository",
    "PromoCodeRepository",
    "RepositoryFactory",
    "ReservationRepository",
]

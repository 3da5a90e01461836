"""Customer Repository. Lookups are by normalized email only."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models.customer import Customer, normalize_email
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CustomerRepository(BaseRepository[Customer]):
    def __init__(self, db: Session):
        super().__init__(db, Customer)

    def find_by_email(self, email: str) -> Optional[Customer]:
        return self.find_one_by(email=normalize_email(email))

    def create_customer(self, email: str, full_name: str, phone: Optional[str] = None) -> Customer:
        """
        Insert and commit a customer.

        Raises:
            UniqueViolationException: If another caller created the same email first
        """
        customer = self.create(email=normalize_email(email), full_name=full_name, phone=phone)
        self.commit()
        return customer

"""
Promo code models.

discount_value is interpreted by discount_type: a whole percent for
``percentage`` codes, cents for ``fixed`` codes. Codes are stored
upper-cased and trimmed so lookups can use plain equality.
"""

from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


def normalize_code(code: str) -> str:
    return code.strip().upper()


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class PromoCode(Base):
    __tablename__ = "promo_codes"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    code = Column(String(64), nullable=False, unique=True, index=True)
    description = Column(String(255), nullable=True)
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Integer, nullable=False)
    min_order_cents = Column(Integer, nullable=True)
    max_discount_cents = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    max_uses = Column(Integer, nullable=True)
    uses_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    usages = relationship("PromoCodeUsage", back_populates="promo_code")

    __table_args__ = (
        CheckConstraint(
            "discount_type IN ('percentage', 'fixed')", name="ck_promo_codes_discount_type"
        ),
        CheckConstraint("discount_value >= 0", name="ck_promo_codes_value_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<PromoCode {self.code}: {self.discount_type} {self.discount_value}>"


class PromoCodeUsage(Base):
    __tablename__ = "promo_code_usages"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    promo_code_id = Column(String(26), ForeignKey("promo_codes.id"), nullable=False, index=True)
    reservation_id = Column(String(26), ForeignKey("reservations.id"), nullable=False, unique=True)
    customer_id = Column(String(26), ForeignKey("customers.id"), nullable=True)
    discount_cents = Column(Integer, nullable=False)
    used_at = Column(DateTime(timezone=True), server_default=func.now())

    promo_code = relationship("PromoCode", back_populates="usages")

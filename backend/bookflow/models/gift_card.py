"""
Gift card models.

A gift card's balance only moves through a redemption row written in the
same transaction, so the redemption history always sums to
``original_value_cents - remaining_balance_cents``.
"""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class GiftCardStatus(str, Enum):
    ACTIVE = "active"
    PARTIALLY_USED = "partially_used"
    FULLY_USED = "fully_used"


class GiftCard(Base):
    __tablename__ = "gift_cards"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    code = Column(String(64), nullable=False, unique=True, index=True)
    original_value_cents = Column(Integer, nullable=False)
    remaining_balance_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    status = Column(String(20), nullable=False, default=GiftCardStatus.ACTIVE.value)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    redemptions = relationship("GiftCardRedemption", back_populates="gift_card")

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'partially_used', 'fully_used')", name="ck_gift_cards_status"
        ),
        CheckConstraint(
            "remaining_balance_cents >= 0 AND remaining_balance_cents <= original_value_cents",
            name="ck_gift_cards_balance_bounds",
        ),
    )

    def __repr__(self) -> str:
        return f"<GiftCard {self.code}: {self.remaining_balance_cents}/{self.original_value_cents}>"


class GiftCardRedemption(Base):
    __tablename__ = "gift_card_redemptions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    gift_card_id = Column(String(26), ForeignKey("gift_cards.id"), nullable=False, index=True)
    reservation_id = Column(String(26), ForeignKey("reservations.id"), nullable=False)
    amount_cents = Column(Integer, nullable=False)
    redeemed_at = Column(DateTime(timezone=True), server_default=func.now())

    gift_card = relationship("GiftCard", back_populates="redemptions")

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_gift_card_redemptions_positive"),
    )

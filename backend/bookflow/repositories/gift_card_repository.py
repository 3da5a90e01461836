"""
Gift Card Repository.

The balance decrement is a single conditional UPDATE, so two concurrent
redemptions of the same card can never take it below zero. Restoring a
balance deletes the redemption rows it gives back, keeping the history
equal to what the card has spent.
"""

import logging
from typing import Optional

from sqlalchemy import case, delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.gift_card import GiftCard, GiftCardRedemption, GiftCardStatus
from ..models.promo_code import normalize_code
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class GiftCardRepository(BaseRepository[GiftCard]):
    def __init__(self, db: Session):
        super().__init__(db, GiftCard)

    def find_by_code(self, code: str) -> Optional[GiftCard]:
        return self.find_one_by(code=normalize_code(code))

    def redemption_exists(self, gift_card_id: str, reservation_id: str) -> bool:
        try:
            return (
                self.db.query(GiftCardRedemption.id)
                .filter(
                    GiftCardRedemption.gift_card_id == gift_card_id,
                    GiftCardRedemption.reservation_id == reservation_id,
                )
                .first()
                is not None
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking gift card redemption: {str(e)}")
            raise RepositoryException(f"Failed to check gift card redemption: {str(e)}")

    def debit_balance(
        self, gift_card_id: str, amount_cents: int, reservation_id: str
    ) -> Optional[GiftCard]:
        """
        Subtract ``amount_cents`` from the card and write the redemption row.

        Returns:
            The refreshed card, or None when the balance no longer covers the amount
        """
        remaining_after = GiftCard.remaining_balance_cents - amount_cents
        try:
            result = self.db.execute(
                update(GiftCard)
                .where(
                    GiftCard.id == gift_card_id,
                    GiftCard.remaining_balance_cents >= amount_cents,
                )
                .values(
                    remaining_balance_cents=remaining_after,
                    status=case(
                        (remaining_after <= 0, GiftCardStatus.FULLY_USED.value),
                        else_=GiftCardStatus.PARTIALLY_USED.value,
                    ),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                return None

            self.db.add(
                GiftCardRedemption(
                    gift_card_id=gift_card_id,
                    reservation_id=reservation_id,
                    amount_cents=amount_cents,
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.logger.error(f"Error debiting gift card {gift_card_id}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to redeem gift card: {str(e)}")

        card = self.db.get(GiftCard, gift_card_id)
        if card is not None:
            self.db.refresh(card)
        return card

    def restore_balance(self, gift_card_id: str, reservation_id: str) -> Optional[GiftCard]:
        """
        Give back what a reservation took from the card and drop its redemption rows.

        Returns:
            The refreshed card, or None when the reservation holds nothing on it
        """
        try:
            redemptions = (
                self.db.query(GiftCardRedemption)
                .filter(
                    GiftCardRedemption.gift_card_id == gift_card_id,
                    GiftCardRedemption.reservation_id == reservation_id,
                )
                .all()
            )
            if not redemptions:
                return None

            removed = self.db.execute(
                delete(GiftCardRedemption)
                .where(GiftCardRedemption.id.in_([row.id for row in redemptions]))
                .execution_options(synchronize_session=False)
            )
            if removed.rowcount != len(redemptions):
                # Another release got there first.
                self.db.rollback()
                return None

            restored = GiftCard.remaining_balance_cents + sum(
                row.amount_cents for row in redemptions
            )
            self.db.execute(
                update(GiftCard)
                .where(GiftCard.id == gift_card_id)
                .values(
                    remaining_balance_cents=restored,
                    status=case(
                        (restored >= GiftCard.original_value_cents, GiftCardStatus.ACTIVE.value),
                        else_=GiftCardStatus.PARTIALLY_USED.value,
                    ),
                )
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.logger.error(f"Error restoring gift card {gift_card_id}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to restore gift card: {str(e)}")

        for row in redemptions:
            self.db.expunge(row)
        card = self.db.get(GiftCard, gift_card_id)
        if card is not None:
            self.db.refresh(card)
        return card

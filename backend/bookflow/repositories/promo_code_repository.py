"""
Promo Code Repository.

Codes are matched by plain equality on the normalized value, which keeps
the lookup index-friendly on every dialect.
"""

import logging
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.promo_code import PromoCode, PromoCodeUsage, normalize_code
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PromoCodeRepository(BaseRepository[PromoCode]):
    def __init__(self, db: Session):
        super().__init__(db, PromoCode)

    def find_by_code(self, code: str) -> Optional[PromoCode]:
        return self.find_one_by(code=normalize_code(code))

    def usage_exists(self, reservation_id: str) -> bool:
        try:
            return (
                self.db.query(PromoCodeUsage.id)
                .filter(PromoCodeUsage.reservation_id == reservation_id)
                .first()
                is not None
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking promo usage: {str(e)}")
            raise RepositoryException(f"Failed to check promo usage: {str(e)}")

    def record_usage(
        self,
        promo_code_id: str,
        reservation_id: str,
        customer_id: Optional[str],
        discount_cents: int,
    ) -> bool:
        """
        Count one use of a promo code and store the usage row.

        The increment is conditional on ``uses_count < max_uses`` so
        concurrent redemptions cannot push a code past its limit.

        Returns:
            False when the code hit its usage limit in the meantime
        """
        try:
            result = self.db.execute(
                update(PromoCode)
                .where(
                    PromoCode.id == promo_code_id,
                    or_(PromoCode.max_uses.is_(None), PromoCode.uses_count < PromoCode.max_uses),
                )
                .values(uses_count=PromoCode.uses_count + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                return False

            self.db.add(
                PromoCodeUsage(
                    promo_code_id=promo_code_id,
                    reservation_id=reservation_id,
                    customer_id=customer_id,
                    discount_cents=discount_cents,
                )
            )
            self.db.commit()
            return True
        except SQLAlchemyError as e:
            self.logger.error(f"Error recording promo usage: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to record promo usage: {str(e)}")

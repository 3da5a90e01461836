"""
Reservation Repository for the Bookflow engine.

Owns the overlap query that availability is built on. Every query here
excludes canceled rows, which is what makes a cancellation release its
slot without any further bookkeeping.
"""

from datetime import date, time
import logging
from typing import List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException, UniqueViolationException
from ..models.reservation import Reservation, ReservationStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ReservationRepository(BaseRepository[Reservation]):
    """Data access for reservations and slot overlap checks."""

    def __init__(self, db: Session):
        super().__init__(db, Reservation)
        self.logger = logging.getLogger(__name__)

    def _active(self):
        return self.db.query(Reservation).filter(
            Reservation.status != ReservationStatus.CANCELED.value
        )

    # Overlap queries

    def has_overlap(
        self, activity_id: str, booking_date: date, start_time: time, end_time: time
    ) -> bool:
        try:
            row = (
                self._active()
                .with_entities(Reservation.id)
                .filter(
                    Reservation.activity_id == activity_id,
                    Reservation.booking_date == booking_date,
                    Reservation.start_time < end_time,
                    Reservation.end_time > start_time,
                )
                .first()
            )
            return row is not None
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking slot overlap: {str(e)}")
            raise RepositoryException(f"Failed to check slot overlap: {str(e)}")

    def get_active_for_date(self, activity_id: str, booking_date: date) -> List[Reservation]:
        """All non-canceled reservations for one activity and date, by start time."""
        try:
            return cast(
                List[Reservation],
                self._active()
                .filter(
                    Reservation.activity_id == activity_id,
                    Reservation.booking_date == booking_date,
                )
                .order_by(Reservation.start_time)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting reservations for date: {str(e)}")
            raise RepositoryException(f"Failed to get reservations: {str(e)}")

    # Lookups

    def confirmation_code_exists(self, confirmation_code: str) -> bool:
        return self.exists(confirmation_code=confirmation_code)

    # Writes

    def insert_reservation(self, **fields) -> Reservation:
        """
        Insert and commit a reservation row.

        Only PostgreSQL carries the range exclusion constraint. Elsewhere the
        unique index only catches identical starts, so partial overlaps are
        rejected here before the insert.

        Raises:
            UniqueViolationException: If the storage guard rejects an overlapping slot
        """
        if self.dialect_name != "postgresql" and self.has_overlap(
            fields["activity_id"], fields["booking_date"], fields["start_time"], fields["end_time"]
        ):
            raise UniqueViolationException(
                f"Slot {fields['start_time']}-{fields['end_time']} overlaps an active reservation"
            )
        reservation = self.create(**fields)
        self.commit()
        self.logger.info(
            "Reservation %s inserted for activity %s on %s %s-%s",
            reservation.id,
            reservation.activity_id,
            reservation.booking_date,
            reservation.start_time,
            reservation.end_time,
        )
        return reservation

    def update_and_commit(self, reservation_id: str, **fields) -> Optional[Reservation]:
        reservation = self.update(reservation_id, **fields)
        if reservation is None:
            return None
        self.commit()
        return reservation

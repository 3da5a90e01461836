"""Activity Repository: schedules plus their blocked and custom dates."""

import logging
from typing import Optional

from sqlalchemy.orm import Query, Session, selectinload

from ..models.activity import Activity
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ActivityRepository(BaseRepository[Activity]):
    def __init__(self, db: Session):
        super().__init__(db, Activity)

    def _apply_eager_loading(self, query: Query) -> Query:
        # Slot generation reads both collections for every date it builds.
        return query.options(
            selectinload(Activity.blocked_dates),
            selectinload(Activity.custom_dates),
        )

    def get_active(self, activity_id: str) -> Optional[Activity]:
        activity = self.get_by_id(activity_id)
        if activity is None or not activity.is_active:
            return None
        return activity

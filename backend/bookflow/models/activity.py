"""
Activity model for the Bookflow engine.

An activity is a bookable, timed experience owned by a venue. Its
schedule is read by slot generation and must not change mid-booking;
venue CRUD lives outside this service, so venue_id is an opaque key.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.constants import DEFAULT_MAX_PARTY_SIZE, DEFAULT_MIN_PARTY_SIZE
from ..database import Base


class Activity(Base):
    """
    Bookable experience with a weekly operating schedule.

    custom_hours maps a weekday name to ``{"enabled", "start_time", "end_time"}``
    and overrides open/close for that weekday; a disabled entry closes it.
    """

    __tablename__ = "activities"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    venue_id = Column(String(26), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    duration_minutes = Column(Integer, nullable=False)
    operating_days = Column(JSON, nullable=False, default=list)
    open_time = Column(Time, nullable=False)
    close_time = Column(Time, nullable=False)
    slot_interval_minutes = Column(Integer, nullable=True)
    custom_hours = Column(JSON, nullable=True)
    advance_booking_days = Column(Integer, nullable=True)

    min_party_size = Column(Integer, nullable=False, default=DEFAULT_MIN_PARTY_SIZE)
    max_party_size = Column(Integer, nullable=False, default=DEFAULT_MAX_PARTY_SIZE)
    unit_price_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    blocked_dates = relationship(
        "BlockedDate", back_populates="activity", cascade="all, delete-orphan"
    )
    custom_dates = relationship(
        "CustomAvailableDate", back_populates="activity", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_activities_duration_positive"),
        CheckConstraint(
            "slot_interval_minutes IS NULL OR slot_interval_minutes > 0",
            name="ck_activities_interval_positive",
        ),
        CheckConstraint("unit_price_cents >= 0", name="ck_activities_price_non_negative"),
        CheckConstraint(
            "min_party_size >= 1 AND max_party_size >= min_party_size",
            name="ck_activities_party_bounds",
        ),
    )

    def __repr__(self) -> str:
        return f"<Activity {self.id}: {self.name} ({self.duration_minutes}m)>"


class BlockedDate(Base):
    """A closure for an activity: the whole day, or a time range when both times are set."""

    __tablename__ = "activity_blocked_dates"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    activity_id = Column(String(26), ForeignKey("activities.id"), nullable=False, index=True)
    blocked_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    reason = Column(String(255), nullable=True)

    activity = relationship("Activity", back_populates="blocked_dates")

    @property
    def is_full_day(self) -> bool:
        return self.start_time is None or self.end_time is None


class CustomAvailableDate(Base):
    """Opens a specific date with its own hours, regardless of the weekly schedule."""

    __tablename__ = "activity_custom_dates"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    activity_id = Column(String(26), ForeignKey("activities.id"), nullable=False, index=True)
    available_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    activity = relationship("Activity", back_populates="custom_dates")

    __table_args__ = (
        UniqueConstraint("activity_id", "available_date", name="uq_activity_custom_date"),
    )

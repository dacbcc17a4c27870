"""Blackout window model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String, Time
from booking.database import Base


class BlockedTime(Base):
    """A range during which a provider cannot be booked, on one date or every date."""
    __tablename__ = "blocked_times"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    date = Column(Date)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_recurring = Column(Boolean, nullable=False, default=False)
    reason = Column(String)

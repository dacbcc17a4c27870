"""Working hours model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Time, UniqueConstraint
from booking.database import Base


class WorkingHours(Base):
    """Open hours of a provider for one weekday (0 = Monday)."""
    __tablename__ = "working_hours"
    __table_args__ = (UniqueConstraint("provider_id", "day_of_week", name="uq_working_hours_provider_day"),)

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

"""Appointment model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Time
from booking.database import Base
from booking.scheduling.calendar import utc_now


APPOINTMENT_STATUSES = ('pending', 'confirmed', 'completed', 'canceled', 'no_show')
REMINDABLE_STATUSES = ('pending', 'confirmed')
CLOSING_STATUSES = ('completed', 'canceled', 'no_show')


class Appointment(Base):
    """Represents a booked appointment with a provider."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"))
    client_name = Column(String, nullable=False)
    client_phone = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String, nullable=False, default='pending')
    price = Column(Numeric(10, 2))
    notes = Column(String)
    reminder_sent = Column(Boolean, nullable=False, default=False)
    reminder_attempts = Column(Integer, nullable=False, default=0)
    reminded_at = Column(DateTime)
    created_at = Column(DateTime, default=utc_now)

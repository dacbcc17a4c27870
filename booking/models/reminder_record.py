"""Reminder delivery history."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from booking.database import Base
from booking.scheduling.calendar import utc_now


class ReminderRecord(Base):
    """Append-only audit entry for one reminder delivery attempt."""
    __tablename__ = "reminder_records"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    channel = Column(String, nullable=False)
    recipient = Column(String, nullable=False)
    message = Column(String, nullable=False)
    status = Column(String, nullable=False)  # sent/failed
    error = Column(String)
    sent_at = Column(DateTime, nullable=False, default=utc_now)

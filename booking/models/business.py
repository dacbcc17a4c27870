"""Business, provider and service model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String
from booking.database import Base


class Business(Base):
    """A tenant: the shop whose providers take bookings."""
    __tablename__ = "businesses"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    address = Column(String)
    phone = Column(String)


class Provider(Base):
    """A team member who can be booked."""
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class Service(Base):
    """A bookable service with a fixed duration."""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2))
    is_active = Column(Boolean, nullable=False, default=True)

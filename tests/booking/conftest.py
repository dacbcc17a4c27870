import os
from datetime import date, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('MESSAGING_BACKEND', 'log')

from booking.database import Base  # noqa: E402
from booking.models.appointment import Appointment  # noqa: E402
from booking.models.blocked_time import BlockedTime  # noqa: E402
from booking.models.business import Business, Provider, Service  # noqa: E402
from booking.models.reminder_record import ReminderRecord  # noqa: E402
from booking.models.working_hours import WorkingHours  # noqa: E402

# 2026-01-05 is a Monday.
MONDAY = date(2026, 1, 5)


def _create_tables(engine) -> None:
    Base.metadata.create_all(bind=engine)


@pytest.fixture
def session_factory():
    engine = create_engine('sqlite:///:memory:')
    _create_tables(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    """Separate connections per session, for tests that race two sessions."""
    engine = create_engine(
        f'sqlite:///{tmp_path / "booking.db"}',
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    _create_tables(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def seed_provider(session, *, open_time=time(9, 0), close_time=time(18, 0), weekdays=range(0, 6)):
    business = Business(name='Barbearia Central', address='Rua A, 100', phone='(11) 3333-4444')
    session.add(business)
    session.flush()

    provider = Provider(business_id=business.id, name='João')
    service = Service(business_id=business.id, name='Corte', duration_minutes=30, price=50)
    session.add_all([provider, service])
    session.flush()

    for weekday in weekdays:
        session.add(WorkingHours(
            provider_id=provider.id,
            day_of_week=weekday,
            start_time=open_time,
            end_time=close_time,
            is_active=True,
        ))

    session.commit()
    return business, provider, service


def add_appointment(
    session,
    provider_id,
    *,
    day=MONDAY,
    start=time(14, 0),
    end=time(14, 30),
    status='confirmed',
    phone='(11) 99999-8888',
    name='Maria',
    service_id=None,
    reminder_sent=False,
):
    appointment = Appointment(
        provider_id=provider_id,
        service_id=service_id,
        client_name=name,
        client_phone=phone,
        date=day,
        start_time=start,
        end_time=end,
        status=status,
        reminder_sent=reminder_sent,
        reminder_attempts=0,
    )
    session.add(appointment)
    session.commit()
    session.refresh(appointment)
    return appointment

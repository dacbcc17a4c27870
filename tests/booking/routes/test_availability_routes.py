from datetime import date, datetime, time

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from conftest import MONDAY, add_appointment, seed_provider

from booking.routes.availability_routes import (
    CreateAppointmentRequest,
    CreateBlockedTimeRequest,
    UpdateAppointmentStatusRequest,
    WorkingHoursRequest,
    create_appointment,
    create_blocked_time,
    list_available_slots,
    list_blocked_times,
    remove_blocked_time,
    set_working_hours,
    update_appointment_status,
    visible_slots,
)

SUNDAY_BEFORE = datetime(2026, 1, 4, 12, 0)


@pytest.fixture(autouse=True)
def route_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('booking.routes.availability_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('booking.routes.availability_routes.local_now', lambda timezone_name: SUNDAY_BEFORE)


def _slots(db, provider_id, day=MONDAY, service_id=None, duration_minutes=None, step_minutes=30):
    return list_available_slots(
        provider_id=provider_id,
        day=day,
        service_id=service_id,
        duration_minutes=duration_minutes,
        step_minutes=step_minutes,
        db=db,
    )


def _request(provider_id, service_id, slot_time=time(10, 0), **overrides):
    fields = {
        'provider_id': provider_id,
        'service_id': service_id,
        'client_name': 'Ana Souza',
        'client_phone': '(11) 98888-7777',
        'date': MONDAY,
        'time': slot_time,
    }
    fields.update(overrides)
    return CreateAppointmentRequest(**fields)


def test_create_appointment_request_normalizes_fields() -> None:
    request = _request(1, 1, slot_time=time(10, 0, 45), client_name='  Ana   Souza ', notes='   ')

    assert request.client_name == 'Ana Souza'
    assert request.time == time(10, 0)
    assert request.notes is None


@pytest.mark.parametrize('overrides', [{'client_name': '   '}, {'client_phone': 'sem número'}, {'notes': 'x' * 601}])
def test_create_appointment_request_rejects_invalid_fields(overrides) -> None:
    with pytest.raises(ValidationError):
        _request(1, 1, **overrides)


def test_create_blocked_time_request_blank_reason_becomes_none() -> None:
    request = CreateBlockedTimeRequest(start_time=time(12, 0), end_time=time(13, 0), is_recurring=True, reason='  ')

    assert request.reason is None


def test_visible_slots_hides_past_days_and_elapsed_minutes() -> None:
    slots = [540, 570, 600]
    now = datetime(2026, 1, 5, 9, 30)

    assert visible_slots(slots, date(2026, 1, 4), now) == []
    assert visible_slots(slots, MONDAY, now) == [600]
    assert visible_slots(slots, date(2026, 1, 6), now) == slots


def test_list_available_slots_for_service(db) -> None:
    _, provider, service = seed_provider(db)

    response = _slots(db, provider.id, service_id=service.id)

    assert response.is_open is True
    assert response.duration_minutes == 30
    assert len(response.slots) == 18
    assert response.slots[0] == '09:00'
    assert response.slots[-1] == '17:30'


def test_list_available_slots_for_closed_day(db) -> None:
    _, provider, _ = seed_provider(db)

    response = _slots(db, provider.id, day=date(2026, 1, 11), duration_minutes=30)

    assert response.is_open is False
    assert response.slots == []


def test_list_available_slots_requires_duration_or_service(db) -> None:
    _, provider, _ = seed_provider(db)

    with pytest.raises(HTTPException) as exception_info:
        _slots(db, provider.id)

    assert exception_info.value.status_code == 400


def test_list_available_slots_for_unknown_provider_or_service(db) -> None:
    _, provider, _ = seed_provider(db)

    with pytest.raises(HTTPException) as missing_provider:
        _slots(db, 999, duration_minutes=30)
    with pytest.raises(HTTPException) as missing_service:
        _slots(db, provider.id, service_id=999)

    assert missing_provider.value.status_code == 404
    assert missing_service.value.status_code == 404


def test_booking_removes_slot_from_listing(db) -> None:
    _, provider, service = seed_provider(db)

    appointment = create_appointment(_request(provider.id, service.id, slot_time=time(14, 0)), db=db)
    response = _slots(db, provider.id, service_id=service.id)

    assert appointment.status == 'pending'
    assert appointment.end_time == time(14, 30)
    assert '14:00' not in response.slots
    assert len(response.slots) == 17


def test_create_appointment_for_taken_slot_returns_conflict(db) -> None:
    _, provider, service = seed_provider(db)
    add_appointment(db, provider.id, start=time(10, 0), end=time(10, 30))

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(_request(provider.id, service.id, slot_time=time(10, 0)), db=db)

    assert exception_info.value.status_code == 409


def test_create_appointment_outside_hours_is_rejected(db) -> None:
    _, provider, service = seed_provider(db)

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(_request(provider.id, service.id, slot_time=time(19, 0)), db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Appointment is outside working hours.'


def test_create_appointment_in_the_past_is_rejected(db, monkeypatch: pytest.MonkeyPatch) -> None:
    _, provider, service = seed_provider(db)
    monkeypatch.setattr(
        'booking.routes.availability_routes.local_now',
        lambda timezone_name: datetime(2026, 1, 5, 11, 0),
    )

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(_request(provider.id, service.id, slot_time=time(10, 0)), db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Appointments must be scheduled in the future.'


def test_create_appointment_for_unknown_service_or_provider(db) -> None:
    _, provider, service = seed_provider(db)

    with pytest.raises(HTTPException) as missing_service:
        create_appointment(_request(provider.id, 999), db=db)
    with pytest.raises(HTTPException) as missing_provider:
        create_appointment(_request(999, service.id), db=db)

    assert missing_service.value.status_code == 404
    assert missing_provider.value.status_code == 404


def test_canceling_through_the_route_reopens_the_slot(db) -> None:
    _, provider, service = seed_provider(db)
    appointment = create_appointment(_request(provider.id, service.id, slot_time=time(14, 0)), db=db)

    canceled = update_appointment_status(
        appointment.id,
        UpdateAppointmentStatusRequest(status=' Canceled '),
        db=db,
    )

    assert canceled.status == 'canceled'
    assert '14:00' in _slots(db, provider.id, service_id=service.id).slots
    rebooked = create_appointment(_request(provider.id, service.id, slot_time=time(14, 0)), db=db)
    assert rebooked.id != appointment.id


def test_update_appointment_status_errors(db) -> None:
    _, provider, _ = seed_provider(db)
    appointment = add_appointment(db, provider.id, status='no_show')

    with pytest.raises(HTTPException) as exception_info:
        update_appointment_status(appointment.id, UpdateAppointmentStatusRequest(status='completed'), db=db)
    assert exception_info.value.status_code == 409

    with pytest.raises(HTTPException) as exception_info:
        update_appointment_status(999, UpdateAppointmentStatusRequest(status='completed'), db=db)
    assert exception_info.value.status_code == 404

    with pytest.raises(ValidationError):
        UpdateAppointmentStatusRequest(status='confirmed')


def test_set_working_hours_changes_listing(db) -> None:
    _, provider, _ = seed_provider(db)

    row = set_working_hours(provider.id, 0, WorkingHoursRequest(start_time=time(13, 0), end_time=time(15, 0)), db=db)
    response = _slots(db, provider.id, duration_minutes=60, step_minutes=60)

    assert (row.day_of_week, row.start_time) == (0, time(13, 0))
    assert response.slots == ['13:00', '14:00']


def test_set_working_hours_rejects_inverted_hours(db) -> None:
    _, provider, _ = seed_provider(db)

    with pytest.raises(HTTPException) as exception_info:
        set_working_hours(provider.id, 0, WorkingHoursRequest(start_time=time(18, 0), end_time=time(9, 0)), db=db)

    assert exception_info.value.status_code == 400


def test_blocked_time_lifecycle(db) -> None:
    _, provider, _ = seed_provider(db)

    blocked = create_blocked_time(
        provider.id,
        CreateBlockedTimeRequest(start_time=time(12, 0), end_time=time(13, 0), is_recurring=True, reason='Almoço'),
        db=db,
    )
    during = _slots(db, provider.id, duration_minutes=30)
    assert [row.id for row in list_blocked_times(provider.id, db=db)] == [blocked.id]
    assert '12:00' not in during.slots

    remove_blocked_time(provider.id, blocked.id, db=db)
    after = _slots(db, provider.id, duration_minutes=30)
    assert '12:00' in after.slots

    with pytest.raises(HTTPException) as exception_info:
        remove_blocked_time(provider.id, blocked.id, db=db)
    assert exception_info.value.status_code == 404


def test_one_off_blocked_time_without_date_is_rejected(db) -> None:
    _, provider, _ = seed_provider(db)

    with pytest.raises(HTTPException) as exception_info:
        create_blocked_time(provider.id, CreateBlockedTimeRequest(start_time=time(12, 0), end_time=time(13, 0)), db=db)

    assert exception_info.value.status_code == 400


def test_slots_on_the_current_day_start_after_now(db, monkeypatch: pytest.MonkeyPatch) -> None:
    _, provider, _ = seed_provider(db)
    monkeypatch.setattr(
        'booking.routes.availability_routes.local_now',
        lambda timezone_name: datetime(2026, 1, 5, 16, 0),
    )

    response = _slots(db, provider.id, duration_minutes=30)

    assert response.slots == ['16:30', '17:00', '17:30']

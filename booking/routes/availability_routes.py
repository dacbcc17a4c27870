import datetime as dt
from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking.core import config
from booking.models.appointment import CLOSING_STATUSES
from booking.repository import BookingRepository
from booking.routes.common import database_unavailable, ensure_database_ready, get_db
from booking.scheduling.availability import compute_slots, drop_past_slots
from booking.scheduling.calendar import format_hhmm, local_now, to_minutes
from booking.scheduling.errors import (
    BookingValidationError,
    InvalidStatusTransition,
    NotFoundError,
    SlotNoLongerAvailable,
)
from booking.scheduling.phone import normalize_phone

router = APIRouter(tags=['availability'])

MAX_APPOINTMENT_NOTES_LENGTH = 600
MAX_CLIENT_NAME_LENGTH = 120


class AvailabilityResponse(BaseModel):
    provider_id: int
    date: date
    duration_minutes: int
    step_minutes: int
    is_open: bool
    slots: list[str]


class CreateAppointmentRequest(BaseModel):
    provider_id: int
    service_id: int
    client_name: str
    client_phone: str
    date: date
    time: time
    notes: str | None = None

    @field_validator('client_name')
    @classmethod
    def validate_client_name(cls, value: str) -> str:
        normalized = ' '.join(value.split())
        if not normalized:
            raise ValueError('Client name is required.')
        if len(normalized) > MAX_CLIENT_NAME_LENGTH:
            raise ValueError(f'Client name must be {MAX_CLIENT_NAME_LENGTH} characters or fewer.')
        return normalized

    @field_validator('client_phone')
    @classmethod
    def validate_client_phone(cls, value: str) -> str:
        normalize_phone(value, config.DEFAULT_COUNTRY_CODE)
        return value.strip()

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class AppointmentResponse(BaseModel):
    id: int
    provider_id: int
    service_id: int | None = None
    client_name: str
    client_phone: str
    date: date
    start_time: time
    end_time: time
    status: str
    reminder_sent: bool
    notes: str | None = None

    class Config:
        from_attributes = True


class UpdateAppointmentStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in CLOSING_STATUSES:
            raise ValueError(f'Status must be one of: {", ".join(CLOSING_STATUSES)}.')
        return normalized


class WorkingHoursRequest(BaseModel):
    start_time: time
    end_time: time
    is_active: bool = True


class WorkingHoursResponse(BaseModel):
    id: int
    provider_id: int
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool

    class Config:
        from_attributes = True


class CreateBlockedTimeRequest(BaseModel):
    start_time: time
    end_time: time
    is_recurring: bool = False
    reason: str | None = None
    date: dt.date | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class BlockedTimeResponse(BaseModel):
    id: int
    provider_id: int
    start_time: time
    end_time: time
    is_recurring: bool
    reason: str | None = None
    date: dt.date | None = None

    class Config:
        from_attributes = True


def resolve_duration_minutes(
    repository: BookingRepository,
    service_id: int | None,
    duration_minutes: int | None,
) -> int:
    if service_id is not None:
        service = repository.get_service(service_id)
        if service is None or not service.is_active:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Service not found.',
            )
        return service.duration_minutes

    if duration_minutes is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Either service_id or duration_minutes is required.',
        )
    return duration_minutes


def visible_slots(slots: list[int], day: date, now: datetime) -> list[int]:
    if day < now.date():
        return []
    if day == now.date():
        # Only slots starting strictly after the current minute.
        return drop_past_slots(slots, to_minutes(now.time()) + 1)
    return slots


@router.get('/providers/{provider_id}/slots', response_model=AvailabilityResponse)
def list_available_slots(
    provider_id: int,
    day: date = Query(..., alias='date'),
    service_id: int | None = Query(default=None),
    duration_minutes: int | None = Query(default=None, ge=1, le=1440),
    step_minutes: int = Query(default=config.DEFAULT_SLOT_STEP_MINUTES, ge=1, le=1440),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        repository = BookingRepository(db)
        if repository.get_provider(provider_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Provider not found.',
            )

        duration = resolve_duration_minutes(repository, service_id, duration_minutes)
        schedule = repository.get_weekly_schedule(provider_id)
        slots = compute_slots(
            provider_id,
            day,
            duration,
            step_minutes,
            schedule,
            repository.get_blackouts(provider_id, day),
            repository.get_appointments(provider_id, day),
        )
        slots = visible_slots(slots, day, local_now(config.BUSINESS_TIMEZONE))

        return AvailabilityResponse(
            provider_id=provider_id,
            date=day,
            duration_minutes=duration,
            step_minutes=step_minutes,
            is_open=schedule.hours_for(day) is not None,
            slots=[format_hhmm(start) for start in slots],
        )
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post('/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        repository = BookingRepository(db)
        service = repository.get_service(data.service_id)
        if service is None or not service.is_active:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Service not found.',
            )

        now = local_now(config.BUSINESS_TIMEZONE)
        if datetime.combine(data.date, data.time) <= now:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Appointments must be scheduled in the future.',
            )

        return repository.insert_appointment(
            provider_id=data.provider_id,
            day=data.date,
            start_minutes=to_minutes(data.time),
            duration_minutes=service.duration_minutes,
            client_name=data.client_name,
            client_phone=data.client_phone,
            service_id=service.id,
            price=service.price,
            notes=data.notes,
        )
    except SlotNoLongerAvailable as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='This time is no longer available. Please pick another slot.',
        ) from exc
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.patch('/appointments/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateAppointmentStatusRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return BookingRepository(db).update_status(appointment_id, data.status)
    except InvalidStatusTransition as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/providers/{provider_id}/working-hours', response_model=list[WorkingHoursResponse])
def list_working_hours(provider_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return BookingRepository(db).list_working_hours(provider_id)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.put('/providers/{provider_id}/working-hours/{day_of_week}', response_model=WorkingHoursResponse)
def set_working_hours(
    provider_id: int,
    day_of_week: int,
    data: WorkingHoursRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return BookingRepository(db).set_working_hours(
            provider_id,
            day_of_week,
            data.start_time,
            data.end_time,
            data.is_active,
        )
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/providers/{provider_id}/blocked-times', response_model=list[BlockedTimeResponse])
def list_blocked_times(provider_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return BookingRepository(db).list_blackouts(provider_id)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post(
    '/providers/{provider_id}/blocked-times',
    response_model=BlockedTimeResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_blocked_time(provider_id: int, data: CreateBlockedTimeRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return BookingRepository(db).add_blackout(
            provider_id,
            data.start_time,
            data.end_time,
            day=data.date,
            is_recurring=data.is_recurring,
            reason=data.reason,
        )
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.delete('/providers/{provider_id}/blocked-times/{blocked_time_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_blocked_time(provider_id: int, blocked_time_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        removed = BookingRepository(db).remove_blackout(provider_id, blocked_time_id)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Blocked time not found.',
        )

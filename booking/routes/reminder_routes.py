from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking.core import config
from booking.reminder_worker import get_driver
from booking.repository import BookingRepository
from booking.routes.common import database_unavailable, ensure_database_ready, get_db
from booking.scheduling.calendar import local_now
from booking.scheduling.replies import ReplyOutcome, confirm_by_reply

router = APIRouter(tags=['reminders'])


class ReminderRunResponse(BaseModel):
    status: str  # completed/skipped
    selected: int = 0
    sent: int = 0
    race_lost: int = 0
    failed: int = 0
    errors: list[str] = []


class ReminderRecordResponse(BaseModel):
    id: int
    appointment_id: int
    channel: str
    recipient: str
    message: str
    status: str
    error: str | None = None
    sent_at: datetime

    class Config:
        from_attributes = True


class InboundReplyRequest(BaseModel):
    phone: str
    text: str

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Phone is required.')
        return normalized


class InboundReplyResponse(BaseModel):
    outcome: str
    appointment_id: int | None = None


@router.post('/run', response_model=ReminderRunResponse)
def run_reminders():
    ensure_database_ready()

    summary = get_driver().tick()
    if summary is None:
        return ReminderRunResponse(status='skipped')

    return ReminderRunResponse(
        status='completed',
        selected=summary.selected,
        sent=summary.sent,
        race_lost=summary.race_lost,
        failed=summary.failed,
        errors=summary.errors,
    )


@router.get('/history', response_model=list[ReminderRecordResponse])
def list_reminder_history(
    appointment_id: int | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return BookingRepository(db).list_reminder_records(appointment_id=appointment_id, limit=limit)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post('/replies', response_model=InboundReplyResponse)
def handle_inbound_reply(data: InboundReplyRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        outcome, appointment_id = confirm_by_reply(
            BookingRepository(db),
            data.phone,
            data.text,
            today=local_now(config.BUSINESS_TIMEZONE).date(),
            country_code=config.DEFAULT_COUNTRY_CODE,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    if outcome is ReplyOutcome.NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='No upcoming appointment found for this phone number.',
        )

    return InboundReplyResponse(outcome=outcome.value, appointment_id=appointment_id)
